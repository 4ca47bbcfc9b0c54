import httpx
import pytest

from app.services import link_preview
from app.services.link_preview import LinkPreviewError, fetch_preview, parse_preview, validate_url

OG_PAGE = """
<html><head>
<title>Fallback title</title>
<meta property="og:title" content="  Ocean Cleanup Update  ">
<meta property="og:description" content="We removed 10 tonnes of plastic.">
<meta property="og:image" content="/img/cover.png">
</head><body></body></html>
"""


@pytest.mark.unit
def test_open_graph_tags_win():
    preview = parse_preview("https://news.example.org/story/1", OG_PAGE)
    assert preview == {
        "url": "https://news.example.org/story/1",
        "title": "Ocean Cleanup Update",
        "description": "We removed 10 tonnes of plastic.",
        "image": "https://news.example.org/img/cover.png",
        "domain": "news.example.org",
    }


@pytest.mark.unit
def test_twitter_and_title_fallbacks():
    html = (
        '<title>Page title</title>'
        '<meta name="twitter:description" content="tw desc">'
        '<meta name="twitter:image" content="https://cdn.example.org/a.jpg">'
    )
    preview = parse_preview("https://example.org/", html)
    assert preview["title"] == "Page title"
    assert preview["description"] == "tw desc"
    assert preview["image"] == "https://cdn.example.org/a.jpg"


@pytest.mark.unit
def test_lengths_are_capped_and_empty_image_is_none():
    html = f'<meta property="og:title" content="{"t" * 150}"><meta name="description" content="{"d" * 300}">'
    preview = parse_preview("https://example.org/", html)
    assert len(preview["title"]) == 100
    assert len(preview["description"]) == 200
    assert preview["image"] is None


@pytest.mark.unit
@pytest.mark.parametrize("url", [None, "", "not a url", "ftp://example.org/file", "https://"])
def test_invalid_urls_rejected(url):
    with pytest.raises(LinkPreviewError):
        validate_url(url)


async def test_fetch_preview_uses_client():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "HonuaLinkPreview" in request.headers["user-agent"]
        return httpx.Response(200, text=OG_PAGE)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        preview = await fetch_preview("https://news.example.org/story/1", client=client)
    assert preview["title"] == "Ocean Cleanup Update"


async def test_fetch_preview_failed_status_is_error():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))) as client:
        with pytest.raises(LinkPreviewError, match="Failed to fetch URL"):
            await fetch_preview("https://example.org/missing", client=client)


@pytest.mark.api
async def test_link_preview_endpoint(client, auth_headers, monkeypatch):
    async def fake_fetch(url, client=None):
        return parse_preview(validate_url(url), OG_PAGE)

    monkeypatch.setattr(link_preview, "fetch_preview", fake_fetch)
    headers = auth_headers("viewer-1")
    resp = await client.get("/api/link-preview", params={"url": "https://news.example.org/x"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["domain"] == "news.example.org"

    missing = await client.get("/api/link-preview", headers=headers)
    assert missing.status_code == 400
    assert missing.json() == {"error": "URL is required"}
