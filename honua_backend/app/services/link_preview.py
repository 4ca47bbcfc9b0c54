import logging
from html.parser import HTMLParser
from urllib.parse import urljoin, urlparse

import httpx

logger = logging.getLogger("honua.api")

USER_AGENT = "Mozilla/5.0 (compatible; HonuaLinkPreview/1.0)"
FETCH_TIMEOUT = 10
TITLE_MAX = 100
DESCRIPTION_MAX = 200


class LinkPreviewError(Exception):
    pass


class _MetaParser(HTMLParser):
    """Collect <meta> name/property values and the <title> text."""

    def __init__(self):
        super().__init__()
        self.meta = {}
        self.title = ""
        self._in_title = False
        self._title_parts = []

    def handle_starttag(self, tag, attrs):
        attrs_d = dict(attrs)
        if tag == "meta":
            key = (attrs_d.get("property") or attrs_d.get("name") or "").strip().lower()
            content = attrs_d.get("content")
            if key and content and key not in self.meta:
                self.meta[key] = content
        elif tag == "title":
            self._in_title = True
            self._title_parts = []

    def handle_endtag(self, tag):
        if tag == "title" and self._in_title:
            self._in_title = False
            if not self.title:
                self.title = "".join(self._title_parts).strip()

    def handle_data(self, data):
        if self._in_title:
            self._title_parts.append(data)


def validate_url(url: str | None) -> str:
    value = (url or "").strip()
    if not value:
        raise LinkPreviewError("URL is required")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise LinkPreviewError("Invalid URL format")
    return value


def parse_preview(url: str, html: str) -> dict:
    parser = _MetaParser()
    parser.feed(html or "")
    parser.close()
    meta = parser.meta
    title = meta.get("og:title") or meta.get("twitter:title") or parser.title or ""
    description = meta.get("og:description") or meta.get("twitter:description") or meta.get("description") or ""
    image = meta.get("og:image") or meta.get("twitter:image") or ""
    if image and not image.startswith(("http://", "https://")):
        image = urljoin(url, image)
    return {
        "url": url,
        "title": title.strip()[:TITLE_MAX],
        "description": description.strip()[:DESCRIPTION_MAX],
        "image": image or None,
        "domain": urlparse(url).hostname,
    }


async def fetch_preview(url: str, *, client: httpx.AsyncClient | None = None) -> dict:
    url = validate_url(url)
    headers = {"User-Agent": USER_AGENT}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=FETCH_TIMEOUT, follow_redirects=True) as own_client:
                resp = await own_client.get(url, headers=headers)
        else:
            resp = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        logger.info("LINK_PREVIEW_FETCH_FAILED url=%s error=%s", url, exc.__class__.__name__)
        raise LinkPreviewError("Failed to fetch URL") from exc
    if resp.status_code >= 400:
        logger.info("LINK_PREVIEW_FETCH_FAILED url=%s status=%s", url, resp.status_code)
        raise LinkPreviewError("Failed to fetch URL")
    return parse_preview(url, resp.text)
