import re

from bs4 import BeautifulSoup

_TAG_RE = re.compile(r"<[^>]+>")

_DROPPED_TAGS = ("script", "style", "head", "img", "noscript")
_BLOCK_TAGS = (
    "p", "div", "tr", "li", "ul", "ol", "table", "section", "article", "header",
    "footer", "blockquote", "pre", "h1", "h2", "h3", "h4", "h5", "h6",
)


def looks_like_html(body: str) -> bool:
    return bool(_TAG_RE.search(body))


def html_to_text(html: str) -> str:
    """Render markup as plain text, one line per block element."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(_DROPPED_TAGS):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for cell in soup.find_all(["td", "th"]):
        cell.append(" ")
    for block in soup.find_all(_BLOCK_TAGS):
        block.insert_before("\n")
        block.append("\n")

    text = soup.get_text()
    text = re.sub(r"[ \t\xa0]+", " ", text)
    return re.sub(r" *\n *", "\n", text)


def clean_text(text: str) -> str:
    text = text.replace("\r\n", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def extract_email_text(body: str | None) -> str:
    """Plain, whitespace-normalised text of an email body (HTML or text)."""
    if not body:
        return ""
    if looks_like_html(body):
        return clean_text(html_to_text(body))
    return clean_text(body)
