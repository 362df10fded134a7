from __future__ import annotations

import datetime as dt
import html
import re
from typing import Optional

import markdown

HEBREW_MONTHS = (
    "ינואר",
    "פברואר",
    "מרץ",
    "אפריל",
    "מאי",
    "יוני",
    "יולי",
    "אוגוסט",
    "ספטמבר",
    "אוקטובר",
    "נובמבר",
    "דצמבר",
)

MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "codehilite"]
MARKDOWN_EXTENSION_CONFIGS = {"codehilite": {"guess_lang": False}}

LEADING_IMAGE_RE = re.compile(r"^<p>(<img[^>]+>)</p>\s*")
TAG_RE = re.compile(r"<[^>]+>")
SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
MARKDOWN_MARKS_RE = re.compile(r"[#*_`\[\]()]")
BODY_INDENT = " " * 8


def split_date(value: object) -> Optional[tuple[int, int, int]]:
    if not isinstance(value, str):
        return None
    parts = value.strip().split("-")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None
    day, month, year = (int(part) for part in parts)
    if not day or not 1 <= month <= 12 or not year:
        return None
    return day, month, year


def parse_date(value: object) -> Optional[dt.date]:
    parts = split_date(value)
    if parts is None:
        return None
    day, month, year = parts
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def format_date(value: object) -> str:
    """Render ``15-6-2023`` as ``15 ביוני 2023``; anything else comes back unchanged."""
    if not value:
        return ""
    parts = split_date(value)
    if parts is None:
        return str(value)
    day, month, year = parts
    return f"{day} ב{HEBREW_MONTHS[month - 1]} {year}"


def markdown_to_html(text: str) -> str:
    md = markdown.Markdown(
        extensions=MARKDOWN_EXTENSIONS,
        extension_configs=MARKDOWN_EXTENSION_CONFIGS,
    )
    return md.convert(text)


def hoist_leading_image(html_text: str) -> tuple[str, str]:
    match = LEADING_IMAGE_RE.match(html_text)
    if not match:
        return "", html_text
    return match.group(1), html_text[match.end() :]


def indent_lines(text: str, prefix: str = BODY_INDENT) -> str:
    return "\n".join(prefix + line if line.strip() else "" for line in text.split("\n"))


def render_markdown_body(body: str, title: str, date: str, is_post: bool) -> str:
    html_text = markdown_to_html(body)
    image, html_text = hoist_leading_image(html_text)
    if not is_post:
        return f"{image}\n{html_text}" if image else html_text
    leading = f"    {image}\n\n" if image else ""
    return (
        "<article>\n"
        "    <header>\n"
        f"        <h1>{escape_text(title)}</h1>\n"
        f'        <p class="meta">{escape_text(format_date(date))}</p>\n'
        "    </header>\n"
        "\n"
        f"{leading}"
        '    <div class="prose">\n'
        f"{indent_lines(html_text)}\n"
        "    </div>\n"
        "\n"
        "    {{partial:back-to-blog}}\n"
        "</article>"
    )


def strip_tags(html_text: str, replacement: str = "") -> str:
    return TAG_RE.sub(replacement, html_text)


def html_to_text(html_text: str) -> str:
    text = SCRIPT_RE.sub("", html_text)
    text = STYLE_RE.sub("", text)
    return strip_tags(text, " ")


def markdown_to_text(text: str) -> str:
    return MARKDOWN_MARKS_RE.sub(" ", text)


def escape_text(value: object) -> str:
    # metadata may already hold entities; unescape first so they are not doubled
    return html.escape(html.unescape(str(value)))
