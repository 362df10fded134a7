from __future__ import annotations

from pathlib import Path

import pytest

from blogbuild.config import SiteConfig
from blogbuild.content import HtmlContent, MarkdownContent, extract_metadata, split_front_matter

LAYOUT = """<!DOCTYPE html>
<html lang="he" dir="rtl">
<head>
  <title>{{title}}</title>
  <meta name="description" content="{{description}}">
</head>
<body>
  {{partial:header}}
  <main>{{content}}</main>
  <footer>&copy; {{year}}</footer>
</body>
</html>
"""

FILES = {
    "src/layouts/main.html": LAYOUT,
    "src/partials/header.html": "<header>Site header</header>",
    "src/partials/back-to-blog.html": '<a class="back" href="/blog.html">Back to blog</a>',
    "src/pages/index.html": "<!-- title: Home -->\n<h1>Home</h1>\n{{posts:2}}\n",
    "src/pages/blog.html": "<!-- title: Blog -->\n{{posts}}\n",
    "src/pages/about.html": "<!-- title: About -->\n<!-- description: About us -->\n<p>About</p>\n{{posts:1}}\n",
    "src/pages/raw.html": "<!-- layout: none -->\n{{partial:header}}\n{{posts}}\n",
    "src/pages/docs/guide.html": "<p>Guide</p>\n",
    "src/posts/first.html": (
        "<!-- title: First post -->\n"
        "<!-- date: 01-01-2024 -->\n"
        "<!-- excerpt: The first one -->\n"
        "<article><h1>{{post.title}}</h1><p>{{post.date}}</p>"
        "<script>var hidden = 1;</script><p>Hello world</p></article>\n"
        "{{related-posts:2}}\n"
    ),
    "src/posts/news/second.md": (
        "---\n"
        "כותרת: פוסט שני\n"
        "date: 15-06-2023\n"
        "excerpt: Second excerpt\n"
        "thumbnail: /img/second.png\n"
        "---\n"
        "![hero](/img/hero.png)\n"
        "\n"
        "Some **bold** text.\n"
    ),
    "src/posts/notes/undated.md": "---\ntitle: Undated note\n---\nJust a note.\n",
    "src/styles/main.css": '@import "base.css";\nbody { color: black; }\n',
    "src/styles/base.css": "html { margin: 0; }\n",
    "src/js/main.js": "console.log('hi');\n",
    "src/assets/robots.txt": "User-agent: *\n",
}


def assemble_html_post(metadata: dict, body: str) -> str:
    """Write metadata as leading comments, the way authors lay out HTML posts."""
    lines = []
    for key, value in metadata.items():
        if isinstance(value, list):
            value = ", ".join(value)
        lines.append(f"<!-- {key}: {value} -->")
    return "\n".join(lines) + "\n\n" + body.strip() + "\n"


def write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    for rel, text in FILES.items():
        write(tmp_path, rel, text)
    return tmp_path


@pytest.fixture
def config(site_root: Path) -> SiteConfig:
    return SiteConfig.from_mapping({"site_name": "Test Blog"}, site_root)


def make_post(name: str, raw: str, output_filename: str | None = None) -> HtmlContent | MarkdownContent:
    """Build a record in memory, the way discovery would for a top-level file."""
    is_markdown = name.endswith(".md")
    body = split_front_matter(raw)[1] if is_markdown else raw
    record_cls = MarkdownContent if is_markdown else HtmlContent
    return record_cls(
        source_path=Path("/virtual/posts") / name,
        relative_path=name,
        filename=name,
        output_filename=output_filename or f"{Path(name).stem}.html",
        raw=raw,
        body=body,
        metadata=extract_metadata(raw, is_markdown),
    )


@pytest.fixture
def post_factory():
    return make_post
