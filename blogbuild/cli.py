from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .assets import copy_assets
from .config import SiteConfig
from .content import scan_posts
from .listing import Shuffle, random_shuffle
from .pages import build_pages, build_posts, build_search_index
from .partials import PartialCache
from .utils import BuildError, clean_output_dir, read_text


@dataclass
class BuildSummary:
    pages: int = 0
    posts: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)


def check_structure(config: SiteConfig) -> None:
    if not config.layout_path.is_file():
        raise BuildError(f"Layout file not found: {config.layout_path}")
    if not config.pages_dir.is_dir():
        raise BuildError(f"Pages directory not found: {config.pages_dir}")


def build_site(config: SiteConfig, shuffle: Shuffle = random_shuffle) -> BuildSummary:
    check_structure(config)
    try:
        layout = read_text(config.layout_path)
    except (OSError, UnicodeDecodeError) as exc:
        raise BuildError(f"Layout file unreadable: {config.layout_path} ({exc})") from exc

    output_dir = config.output_dir
    if config.clean:
        clean_output_dir(output_dir, config.root)
    output_dir.mkdir(parents=True, exist_ok=True)

    summary = BuildSummary()
    partials = PartialCache(config.partials_dir)
    posts = scan_posts(config.posts_dir, summary.failures)
    build_search_index(output_dir, posts)

    summary.pages, page_failures = build_pages(
        layout,
        config.pages_dir,
        output_dir,
        partials,
        posts,
        config.site_name,
        variables=config.variables,
        shuffle=shuffle,
    )
    summary.failures.extend(page_failures)
    summary.posts = build_posts(
        layout,
        output_dir,
        partials,
        posts,
        config.site_name,
        variables=config.variables,
        shuffle=shuffle,
    )
    copy_assets(config.src_dir, output_dir, config.css_entry)
    return summary


def run_build(config: SiteConfig) -> BuildSummary:
    print("Building site...")
    start = time.perf_counter()
    summary = build_site(config)
    elapsed = time.perf_counter() - start
    print(f"Build completed in {elapsed:.2f}s ({summary.pages} pages, {summary.posts} posts).")
    if summary.failures:
        print(f"{len(summary.failures)} item(s) skipped:", file=sys.stderr)
        for path, message in summary.failures:
            print(f"  {path}: {message}", file=sys.stderr)
    return summary


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Build the blog from src/ into a static site.")
    parser.add_argument(
        "--config",
        default="site.toml",
        help="Path to site config file (TOML/YAML/JSON).",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("build", help="Build the site once.")
    dev_parser = subparsers.add_parser("dev", help="Build, serve and rebuild on change.")
    dev_parser.add_argument("--port", type=int, default=None, help="Port for the dev server.")
    args = parser.parse_args(argv)

    config = SiteConfig.load(Path(args.config))
    command = args.command or "build"

    if command == "dev":
        from .dev import serve

        if args.port is not None:
            config.port = args.port
        try:
            serve(config)
        except BuildError as exc:
            print(f"Dev server not started: {exc}", file=sys.stderr)
            return 1
        except OSError as exc:
            print(f"Could not listen on port {config.port}: {exc}", file=sys.stderr)
            return 1
        return 0

    try:
        run_build(config)
    except BuildError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(f"Site generated in: {config.output_dir}")
    return 0
