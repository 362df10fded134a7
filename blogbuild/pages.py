from __future__ import annotations

import json
import re
import sys
from pathlib import Path
from typing import Optional, Sequence

from .content import ContentRecord
from .listing import Shuffle, random_shuffle
from .partials import PartialCache
from .template import render_page
from .utils import read_text, write_text

SEARCH_CONTENT_LIMIT = 1000
WHITESPACE_RE = re.compile(r"\s+")


def plain_text(post: ContentRecord) -> str:
    return WHITESPACE_RE.sub(" ", post.search_text()).strip()


def build_search_index(output_dir: Path, posts: Sequence[ContentRecord]) -> None:
    index = []
    for post in posts:
        index.append(
            {
                "title": post.title,
                "url": post.url,
                "date": post.date,
                "excerpt": post.excerpt,
                "content": plain_text(post)[:SEARCH_CONTENT_LIMIT],
            }
        )
    write_text(output_dir / "posts.json", json.dumps(index, indent=2, ensure_ascii=False))
    print("Generated posts.json")


def build_pages(
    layout: str,
    pages_dir: Path,
    output_dir: Path,
    partials: PartialCache,
    posts: Sequence[ContentRecord],
    site_name: str,
    variables: Optional[dict[str, str]] = None,
    shuffle: Shuffle = random_shuffle,
) -> tuple[int, list[tuple[str, str]]]:
    built = 0
    failures = []
    for page_path in sorted(pages_dir.rglob("*.html"), key=lambda p: p.as_posix()):
        rel = page_path.relative_to(pages_dir).as_posix()
        try:
            source = read_text(page_path)
        except (OSError, UnicodeDecodeError) as exc:
            print(f"Failed to read page {page_path}: {exc}", file=sys.stderr)
            failures.append((str(page_path), str(exc)))
            continue
        html_doc = render_page(
            source,
            layout,
            partials,
            posts,
            page_name=page_path.name,
            site_name=site_name,
            variables=variables,
            shuffle=shuffle,
        )
        write_text(output_dir / rel, html_doc)
        built += 1
        print(f"Built: {rel}")
    return built, failures


def build_posts(
    layout: str,
    output_dir: Path,
    partials: PartialCache,
    posts: Sequence[ContentRecord],
    site_name: str,
    variables: Optional[dict[str, str]] = None,
    shuffle: Shuffle = random_shuffle,
) -> int:
    for post in posts:
        html_doc = render_page(
            post.raw,
            layout,
            partials,
            posts,
            post,
            page_name=post.filename,
            site_name=site_name,
            variables=variables,
            shuffle=shuffle,
        )
        write_text(output_dir / "posts" / post.output_filename, html_doc)
        print(f"Built post: {post.relative_path} -> posts/{post.output_filename}")
    return len(posts)
