import re
from dataclasses import dataclass, asdict
from typing import Iterator, List, Optional
from urllib.parse import quote

# one alternative per span kind: url | mention | hashtag
TOKEN_PATTERN = re.compile(r"(https?://\S+)|@([A-Za-z0-9_]+)|#([A-Za-z0-9_]+)")
MENTION_PATTERN = re.compile(r"@([A-Za-z0-9_]+)")
HASHTAG_PATTERN = re.compile(r"#([A-Za-z0-9_]+)")
URL_PATTERN = re.compile(r"https?://\S+")


@dataclass(frozen=True)
class Span:
    kind: str  # text|url|mention|hashtag
    text: str
    href: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class AnnotatedText:
    """Lazy view over the spans of a piece of text.

    Iterating twice walks the text twice; nothing is cached.
    """

    def __init__(self, text: str):
        self.text = text or ""

    def __iter__(self) -> Iterator[Span]:
        cursor = 0
        for match in TOKEN_PATTERN.finditer(self.text):
            start, end = match.span()
            if start > cursor:
                yield Span("text", self.text[cursor:start])
            url, mention, hashtag = match.groups()
            token = match.group(0)
            if url:
                yield Span("url", token, url)
            elif mention:
                yield Span("mention", token, f"/profile/{mention}")
            else:
                yield Span("hashtag", token, f"/search?q={quote('#' + hashtag)}")
            cursor = end
        if cursor < len(self.text):
            yield Span("text", self.text[cursor:])


def annotate(text: str | None) -> AnnotatedText:
    return AnnotatedText(text or "")


def render_spans(text: str | None) -> List[dict]:
    return [span.to_dict() for span in annotate(text)]


def _unique(values) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def extract_mentions(text: str | None) -> List[str]:
    return _unique(MENTION_PATTERN.findall(text or ""))


def extract_hashtags(text: str | None) -> List[str]:
    return _unique(tag.lower() for tag in HASHTAG_PATTERN.findall(text or ""))


def extract_urls(text: str | None) -> List[str]:
    return URL_PATTERN.findall(text or "")
