class KalavaraError(Exception):
    """Base class for errors raised by kalavara."""


class MailTransportError(KalavaraError):
    """Fetching messages from the mailbox failed."""


class MailAuthorizationError(MailTransportError):
    """The mailbox rejected or was never given credentials."""


class UserNotFoundError(KalavaraError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id
