from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from .config import DEFAULT_SITE_NAME
from .content import ContentRecord, extract_metadata
from .listing import Shuffle, random_shuffle, substitute_post_lists
from .partials import PartialCache, resolve_partials
from .render import escape_text, format_date

LAYOUT_RE = re.compile(r"<!--\s*layout:\s*(.+?)\s*-->")
CONTENT_PLACEHOLDER = "{{content}}"
GRID_PAGES = {"index.html", "blog.html"}
TITLE_SEPARATOR = " | "


@dataclass
class RenderContext:
    title: str = ""
    description: str = ""
    year: str = ""
    current_post_url: Optional[str] = None
    use_grid: bool = False
    variables: dict[str, str] = field(default_factory=dict)

    def as_variables(self) -> dict[str, str]:
        values = dict(self.variables)
        values.update(
            title=self.title,
            description=self.description,
            year=self.year,
            currentPostUrl=self.current_post_url or "",
            useGrid="true" if self.use_grid else "false",
        )
        return values


@dataclass
class PageState:
    posts: Sequence[ContentRecord]
    partials: PartialCache
    context: RenderContext
    post: Optional[ContentRecord] = None
    shuffle: Shuffle = random_shuffle


def partials_pass(text: str, page: PageState) -> str:
    return resolve_partials(text, page.partials)


def post_lists_pass(text: str, page: PageState) -> str:
    return substitute_post_lists(
        text,
        page.posts,
        use_grid=page.context.use_grid,
        current_post_url=page.context.current_post_url,
        shuffle=page.shuffle,
    )


def post_fields_pass(text: str, page: PageState) -> str:
    post = page.post
    if post is None:
        return text
    text = text.replace("{{post.title}}", escape_text(post.title))
    text = text.replace("{{post.date}}", escape_text(format_date(post.date)))
    return text.replace("{{post.excerpt}}", escape_text(post.excerpt))


def variables_pass(text: str, page: PageState) -> str:
    for key, value in page.context.as_variables().items():
        text = text.replace(f"{{{{{key}}}}}", value)
    return text


Pass = tuple[str, Callable[[str, PageState], str]]

SOURCE_PASSES: tuple[Pass, ...] = (
    ("post-lists", post_lists_pass),
    ("post-fields", post_fields_pass),
)
CONTENT_PASSES: tuple[Pass, ...] = (("partials", partials_pass),)
COMPOSITE_PASSES: tuple[Pass, ...] = (
    ("partials", partials_pass),
    ("post-lists", post_lists_pass),
    ("variables", variables_pass),
)


def run_passes(text: str, passes: Sequence[Pass], page: PageState) -> str:
    for _, apply in passes:
        text = apply(text, page)
    return text


def uses_layout(source: str) -> bool:
    match = LAYOUT_RE.search(source)
    return not match or match.group(1).strip().lower() != "none"


def page_title(metadata: dict, post: Optional[ContentRecord], site_name: str) -> str:
    title = metadata.get("title") or (post.title if post else "")
    return TITLE_SEPARATOR.join(segment for segment in (str(title or ""), site_name) if segment)


def render_page(
    page_source: str,
    layout_source: str,
    partials: PartialCache,
    posts: Sequence[ContentRecord],
    post: Optional[ContentRecord] = None,
    *,
    page_name: str = "",
    site_name: str = DEFAULT_SITE_NAME,
    year: Optional[str] = None,
    variables: Optional[dict[str, str]] = None,
    shuffle: Shuffle = random_shuffle,
) -> str:
    context = RenderContext(
        year=year or str(dt.date.today().year),
        current_post_url=post.url if post else None,
        use_grid=post is None and Path(page_name).name in GRID_PAGES,
        variables=dict(variables or {}),
    )
    page = PageState(posts=posts, partials=partials, context=context, post=post, shuffle=shuffle)

    # a post renders from its own record; page_source only feeds plain pages
    if post is None:
        metadata = extract_metadata(page_source, is_markdown=False)
        source = page_source
    else:
        metadata = post.metadata
        source = post.render_body(is_post=True)
    if not uses_layout(source):
        return run_passes(source, CONTENT_PASSES, page)
    content = run_passes(source, SOURCE_PASSES, page)

    context.title = escape_text(page_title(metadata, post, site_name))
    context.description = escape_text(metadata.get("description") or "")

    content = run_passes(content, CONTENT_PASSES, page)
    output = layout_source.replace(CONTENT_PLACEHOLDER, content, 1)
    return run_passes(output, COMPOSITE_PASSES, page)
