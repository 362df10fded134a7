from __future__ import annotations

import random
import re
from typing import Callable, Optional, Sequence

from .content import ContentRecord
from .render import escape_text, format_date

POSTS_RE = re.compile(r"\{\{posts(?::(\d+))?\}\}")
RELATED_POSTS_RE = re.compile(r"\{\{related-posts(?::(\d+))?\}\}")
RELATED_DEFAULT_LIMIT = 3

PLACEHOLDER_ICON = (
    '<svg class="post-card-image-placeholder" width="80" height="80" viewBox="0 0 24 24" '
    'fill="none" stroke="currentColor" stroke-width="1.5">'
    '<path d="M19 3H5a2 2 0 0 0-2 2v14a2 2 0 0 0 2 2h14a2 2 0 0 0 2-2V5a2 2 0 0 0-2-2z"/>'
    '<circle cx="9" cy="9" r="2"/>'
    '<path d="m21 15-3.086-3.086a2 2 0 0 0-2.828 0L6 21"/>'
    "</svg>"
)

Shuffle = Callable[[list], list]


def random_shuffle(items: list) -> list:
    return random.sample(items, len(items))


def _take(posts: Sequence[ContentRecord], limit: Optional[int]) -> Sequence[ContentRecord]:
    return posts[:limit] if limit else posts


def build_post_list(posts: Sequence[ContentRecord], limit: Optional[int] = None) -> str:
    items = []
    for post in _take(posts, limit):
        items.append(
            "  <li>\n"
            f'    <a href="{post.url}">\n'
            f'      <span class="post-title">{escape_text(post.title)}</span>\n'
            f'      <span class="post-date">{escape_text(format_date(post.date))}</span>\n'
            "    </a>\n"
            "  </li>"
        )
    return '<ul class="post-list">\n' + "\n".join(items) + "\n</ul>"


def build_post_card(post: ContentRecord) -> str:
    title = escape_text(post.title)
    if post.thumbnail:
        image = f'<img src="{escape_text(post.thumbnail)}" alt="{title}">'
    else:
        image = PLACEHOLDER_ICON
    excerpt = (
        f'        <div class="post-card-excerpt">{escape_text(post.excerpt)}</div>\n' if post.excerpt else ""
    )
    return (
        "  <li>\n"
        f'    <a href="{post.url}">\n'
        f'      <div class="post-card-image">{image}</div>\n'
        '      <div class="post-card-content">\n'
        f'        <div class="post-card-title">{title}</div>\n'
        f"{excerpt}"
        f'        <div class="post-card-date">{escape_text(format_date(post.date))}</div>\n'
        "      </div>\n"
        "    </a>\n"
        "  </li>"
    )


def build_post_grid(posts: Sequence[ContentRecord], limit: Optional[int] = None) -> str:
    cards = [build_post_card(post) for post in _take(posts, limit)]
    return '<ul class="post-grid">\n' + "\n".join(cards) + "\n</ul>"


def generate_list(posts: Sequence[ContentRecord], limit: Optional[int] = None, style: str = "list") -> str:
    if style == "grid":
        return build_post_grid(posts, limit)
    if style == "list":
        return build_post_list(posts, limit)
    raise ValueError(f"Unknown post list style: {style!r}")


def select_related(
    posts: Sequence[ContentRecord],
    exclude_url: Optional[str],
    limit: int = RELATED_DEFAULT_LIMIT,
    shuffle: Shuffle = random_shuffle,
) -> list[ContentRecord]:
    others = [post for post in posts if post.url != exclude_url] if exclude_url else list(posts)
    return list(shuffle(others))[:limit]


def generate_related(
    posts: Sequence[ContentRecord],
    exclude_url: Optional[str],
    limit: int = RELATED_DEFAULT_LIMIT,
    shuffle: Shuffle = random_shuffle,
) -> str:
    return build_post_grid(select_related(posts, exclude_url, limit, shuffle))


def substitute_post_lists(
    text: str,
    posts: Sequence[ContentRecord],
    use_grid: bool = False,
    current_post_url: Optional[str] = None,
    shuffle: Shuffle = random_shuffle,
) -> str:
    style = "grid" if use_grid else "list"

    def posts_repl(match: re.Match) -> str:
        limit = int(match.group(1)) if match.group(1) else None
        return generate_list(posts, limit, style)

    def related_repl(match: re.Match) -> str:
        limit = int(match.group(1)) if match.group(1) else RELATED_DEFAULT_LIMIT
        return generate_related(posts, current_post_url, limit, shuffle)

    text = POSTS_RE.sub(posts_repl, text)
    return RELATED_POSTS_RE.sub(related_repl, text)
