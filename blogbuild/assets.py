from __future__ import annotations

import re
import shutil
import sys
from pathlib import Path
from typing import Optional

from .utils import read_text, write_text

CSS_IMPORT_RE = re.compile(r"""@import\s+['"](.+?)['"]\s*;""")


def resolve_css_imports(css_path: Path, _stack: Optional[tuple[Path, ...]] = None) -> str:
    """Inline ``@import "x.css";`` statements depth-first, relative to the importer."""
    stack = (_stack or ()) + (css_path.resolve(),)
    content = read_text(css_path)

    def repl(match: re.Match) -> str:
        import_path = match.group(1)
        target = (css_path.parent / import_path).resolve()
        if target in stack:
            print(f"CSS import cycle skipped: {import_path}", file=sys.stderr)
            return f"/* Import cycle skipped: {import_path} */"
        if not target.is_file():
            print(f"CSS import not found: {import_path}", file=sys.stderr)
            return f"/* Import not found: {import_path} */"
        imported = resolve_css_imports(target, stack)
        return f"\n/* === Imported from {import_path} === */\n{imported}\n"

    return CSS_IMPORT_RE.sub(repl, content)


def bundle_css(styles_dir: Path, output_dir: Path, entry: str = "main.css") -> bool:
    entry_path = styles_dir / entry
    if not entry_path.is_file():
        return False
    write_text(output_dir / "styles" / entry, resolve_css_imports(entry_path))
    print(f"Bundled styles/{entry}")
    return True


def copy_static(static_dir: Path, output_dir: Path) -> None:
    if not static_dir.is_dir():
        return
    output_dir.mkdir(parents=True, exist_ok=True)
    for item in static_dir.iterdir():
        dest = output_dir / item.name
        if item.is_dir():
            if dest.exists():
                shutil.rmtree(dest)
            shutil.copytree(item, dest)
        else:
            shutil.copy2(item, dest)


def copy_assets(src_dir: Path, output_dir: Path, css_entry: str = "main.css") -> None:
    # assets/ lands in the output root (favicons, robots.txt, images)
    copy_static(src_dir / "assets", output_dir)
    copy_static(src_dir / "js", output_dir / "js")
    bundle_css(src_dir / "styles", output_dir, css_entry)
