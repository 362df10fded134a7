from __future__ import annotations

import datetime as dt
import re
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from .render import html_to_text, markdown_to_text, parse_date, render_markdown_body
from .utils import parse_list, read_text

POST_SUFFIXES = (".html", ".md")
COMMENT_KEYS = ("title", "date", "excerpt", "description", "tags", "thumbnail")
COMMENT_RE_TEMPLATE = r"<!--\s*{key}:\s*(.+?)\s*-->"
COMMENT_PATTERNS = {key: re.compile(COMMENT_RE_TEMPLATE.format(key=key)) for key in COMMENT_KEYS}

# canonical key -> Hebrew synonym accepted in frontmatter
FIELD_ALIASES = {
    "title": "כותרת",
    "date": "תאריך",
    "excerpt": "תקציר",
    "description": "תיאור",
    "tags": "תגיות",
    "thumbnail": "מזעורית",
}


def split_front_matter(text: str) -> tuple[str, str]:
    """Return ``(yaml_block, body)``; the block is empty when there is none."""
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != "---":
        return "", clean_text

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            end = i
            break
    if end is None:
        return "", clean_text
    return "\n".join(lines[1:end]), "\n".join(lines[end + 1 :])


def _normalize_value(key: str, value: Any) -> Any:
    if key == "date" and isinstance(value, dt.date):
        return f"{value.day:02d}-{value.month:02d}-{value.year}"
    if key == "tags":
        return parse_list(value)
    return value


def parse_front_matter(text: str) -> dict:
    block, _ = split_front_matter(text)
    if not block.strip():
        return {}
    try:
        data = yaml.safe_load(block)
    except (yaml.YAMLError, ValueError):
        # impossible timestamps such as 2024-02-30 raise ValueError from the constructor
        return {}
    if not isinstance(data, dict):
        return {}

    meta = {}
    for key, alias in FIELD_ALIASES.items():
        value = data.get(key) or data.get(alias)
        if value:
            meta[key] = _normalize_value(key, value)
    for key, value in data.items():
        key = str(key)
        if key in FIELD_ALIASES or key in FIELD_ALIASES.values():
            continue
        meta[key] = value
    return meta


def parse_comment_metadata(text: str) -> dict:
    meta = {}
    for key, pattern in COMMENT_PATTERNS.items():
        match = pattern.search(text)
        if match:
            meta[key] = _normalize_value(key, match.group(1))
    return meta


def extract_metadata(text: str, is_markdown: bool = False) -> dict:
    if is_markdown:
        return parse_front_matter(text)
    return parse_comment_metadata(text)


@dataclass(frozen=True)
class ContentRecord(ABC):
    source_path: Path
    relative_path: str
    filename: str
    output_filename: str
    raw: str
    body: str
    metadata: dict = field(default_factory=dict)

    @property
    def slug(self) -> str:
        return Path(self.filename).stem

    @property
    def url(self) -> str:
        return f"/posts/{self.output_filename}"

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or self.slug)

    @property
    def date(self) -> str:
        return str(self.metadata.get("date") or "")

    @property
    def excerpt(self) -> str:
        return str(self.metadata.get("excerpt") or "")

    @property
    def description(self) -> str:
        return str(self.metadata.get("description") or "")

    @property
    def tags(self) -> list[str]:
        return list(self.metadata.get("tags") or [])

    @property
    def thumbnail(self) -> str:
        return str(self.metadata.get("thumbnail") or "")

    @property
    def sort_date(self) -> Optional[dt.date]:
        return parse_date(self.date)

    @abstractmethod
    def render_body(self, is_post: bool = False) -> str: ...

    @abstractmethod
    def search_text(self) -> str: ...


class MarkdownContent(ContentRecord):
    def render_body(self, is_post: bool = False) -> str:
        return render_markdown_body(self.body, self.title, self.date, is_post)

    def search_text(self) -> str:
        return markdown_to_text(self.body)


class HtmlContent(ContentRecord):
    def render_body(self, is_post: bool = False) -> str:
        # comment metadata and placeholders stay in; the compositor consumes them
        return self.raw

    def search_text(self) -> str:
        return html_to_text(self.body)


def output_filename_for(name: str, prefix: str) -> str:
    stem = Path(name).stem
    return f"{prefix}-{stem}.html" if prefix else f"{stem}.html"


def load_record(path: Path, root: Path, output_filename: str) -> ContentRecord:
    raw = read_text(path)
    is_markdown = path.suffix == ".md"
    if is_markdown:
        _, body = split_front_matter(raw)
        record_cls = MarkdownContent
    else:
        body = raw
        record_cls = HtmlContent
    return record_cls(
        source_path=path.resolve(),
        relative_path=path.relative_to(root).as_posix(),
        filename=path.name,
        output_filename=output_filename,
        raw=raw,
        body=body,
        metadata=extract_metadata(raw, is_markdown),
    )


def find_posts(root: Path, failures: Optional[list[tuple[str, str]]] = None) -> list[ContentRecord]:
    records: list[ContentRecord] = []
    if not root.is_dir():
        return records
    taken: dict[str, str] = {}

    def walk(directory: Path, prefix: str) -> None:
        for item in sorted(directory.iterdir(), key=lambda p: p.name):
            if item.is_dir():
                walk(item, f"{prefix}-{item.name}" if prefix else item.name)
                continue
            if item.suffix not in POST_SUFFIXES:
                continue
            relative = item.relative_to(root).as_posix()
            output_filename = output_filename_for(item.name, prefix)
            if output_filename in taken:
                print(
                    f"Skipping {relative}: output name {output_filename} "
                    f"already used by {taken[output_filename]}",
                    file=sys.stderr,
                )
                continue
            try:
                record = load_record(item, root, output_filename)
            except (OSError, ValueError) as exc:
                print(f"Skipping unreadable post {relative}: {exc}", file=sys.stderr)
                if failures is not None:
                    failures.append((str(item), str(exc)))
                continue
            taken[output_filename] = relative
            records.append(record)

    walk(root, "")
    return records


def sort_posts(records: Iterable[ContentRecord]) -> list[ContentRecord]:
    # reverse=True keeps ties (and every undated record) in discovery order
    return sorted(
        records,
        key=lambda record: (record.sort_date is not None, record.sort_date or dt.date.min),
        reverse=True,
    )


def scan_posts(posts_dir: Path, failures: Optional[list[tuple[str, str]]] = None) -> list[ContentRecord]:
    return sort_posts(find_posts(posts_dir, failures))
