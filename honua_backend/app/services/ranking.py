from collections import Counter
from typing import Iterable, List, Sequence, Tuple

from app.utils.text import HASHTAG_PATTERN

LIKE_WEIGHT = 1
COMMENT_WEIGHT = 2
REPOST_WEIGHT = 3


def engagement_score(likes: int | None, comments: int | None, reposts: int | None) -> int:
    return (likes or 0) * LIKE_WEIGHT + (comments or 0) * COMMENT_WEIGHT + (reposts or 0) * REPOST_WEIGHT


def rank_trending(posts: Sequence, limit: int) -> List[Tuple[object, int]]:
    """Score posts and order them by score, highest first.

    ``posts`` must already be in recency order; ``sorted`` is stable, so equal
    scores keep that order.
    """
    scored = [(post, engagement_score(post.likes_count, post.comments_count, post.reposts_count)) for post in posts]
    scored = sorted(scored, key=lambda item: item[1], reverse=True)
    return scored[:max(limit, 0)]


def count_hashtags(contents: Iterable[str | None], contains: str | None = None) -> List[Tuple[str, int]]:
    counts: Counter = Counter()
    needle = (contains or "").lower()
    for content in contents:
        for tag in HASHTAG_PATTERN.findall(content or ""):
            tag = tag.lower()
            if needle and needle not in tag:
                continue
            counts[tag] += 1
    # ties keep first-seen order
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)
