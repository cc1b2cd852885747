import asyncio
import os
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import httpx

from kalavara.domain.mail import build_transaction_query, decode_message
from kalavara.errors import MailAuthorizationError, MailTransportError
from kalavara.logger import get_logger
from kalavara.models import Bank, RawEmail

logger = get_logger(__name__)

DEFAULT_GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
LIST_PAGE_SIZE = 100
DETAIL_CONCURRENCY = 10


class GmailClient:
    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url or os.getenv("GMAIL_API_URL") or DEFAULT_GMAIL_API_URL).rstrip("/")
        self.timeout = timeout
        self._client = client
        self._client_lock = asyncio.Lock()

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        client = self._client
        if client is not None and not client.is_closed:
            return client

        async with self._client_lock:
            client = self._client
            if client is None or client.is_closed:
                client = httpx.AsyncClient(timeout=self.timeout)
                self._client = client
            return client

    @staticmethod
    def _headers(access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    async def _get(self, access_token: str, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if not access_token:
            raise MailAuthorizationError("No access token found. Please sign in again.")

        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}/{path}",
                headers=self._headers(access_token),
                params=params,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise MailAuthorizationError(
                    f"Gmail rejected the access token (HTTP {status})"
                ) from exc
            raise MailTransportError(f"Gmail request failed (HTTP {status})") from exc
        except httpx.HTTPError as exc:
            raise MailTransportError(f"Gmail request failed: {exc}") from exc
        return response.json()

    async def list_message_ids(
        self,
        access_token: str,
        query: str,
        *,
        page_token: str | None = None,
        max_results: int = LIST_PAGE_SIZE,
    ) -> tuple[list[str], str | None]:
        params: dict[str, Any] = {"q": query, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        data = await self._get(access_token, "messages", params)
        ids = [item["id"] for item in data.get("messages", []) if item.get("id")]
        return ids, data.get("nextPageToken")

    async def get_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        return await self._get(access_token, f"messages/{message_id}", {"format": "full"})

    async def fetch_messages(
        self,
        access_token: str,
        query: str,
        max_results: int = 500,
    ) -> list[dict[str, Any]]:
        """Full message resources matching ``query``, at most ``max_results``."""
        messages: list[dict[str, Any]] = []
        page_token: str | None = None

        while True:
            ids, page_token = await self.list_message_ids(
                access_token,
                query,
                page_token=page_token,
                max_results=min(LIST_PAGE_SIZE, max_results - len(messages)),
            )
            for start in range(0, len(ids), DETAIL_CONCURRENCY):
                group = ids[start:start + DETAIL_CONCURRENCY]
                details = await asyncio.gather(
                    *(self.get_message(access_token, message_id) for message_id in group)
                )
                messages.extend(details)

            if not page_token or len(messages) >= max_results:
                break

        return messages[:max_results]

    async def fetch_transaction_emails(
        self,
        access_token: str,
        *,
        banks: Iterable[Bank] | None = None,
        since: datetime | None = None,
        full_sync: bool = False,
        max_results: int = 500,
    ) -> list[RawEmail]:
        query = build_transaction_query(banks=banks, since=since, full_sync=full_sync)
        logger.info("[GMAIL] Query: %s", query)

        emails: list[RawEmail] = []
        for message in await self.fetch_messages(access_token, query, max_results=max_results):
            decoded = decode_message(message)
            if decoded is not None:
                emails.append(decoded)

        logger.info("[GMAIL] Fetched %d transaction emails", len(emails))
        return emails
