from __future__ import annotations

import json
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .utils import parse_bool, parse_int

DEFAULT_SITE_NAME = "ישוע בלוג"
DEFAULT_PORT = 3000


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            print(f"Invalid TOML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        return data
    if suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            print(f"Invalid YAML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        if data is None:
            return {}
        if not isinstance(data, dict):
            print(f"YAML config must be a mapping: {path}", file=sys.stderr)
            sys.exit(1)
        return data
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON in config file {path}: {exc}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, dict):
        print(f"JSON config must be an object: {path}", file=sys.stderr)
        sys.exit(1)
    return data


@dataclass
class SiteConfig:
    root: Path
    src_dir: Path
    output_dir: Path
    site_name: str = DEFAULT_SITE_NAME
    css_entry: str = "main.css"
    port: int = DEFAULT_PORT
    clean: bool = True
    variables: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict, root: Path) -> "SiteConfig":
        def resolve(key: str, default: str) -> Path:
            path = Path(str(data.get(key) or default))
            if not path.is_absolute():
                path = root / path
            return path

        variables = data.get("variables") or {}
        if not isinstance(variables, dict):
            print("Config 'variables' must be a table; ignoring it.", file=sys.stderr)
            variables = {}
        clean = data.get("clean")
        return cls(
            root=root,
            src_dir=resolve("src", "src"),
            output_dir=resolve("output", "public"),
            site_name=str(data.get("site_name") or DEFAULT_SITE_NAME),
            css_entry=str(data.get("css_entry") or "main.css"),
            port=parse_int(data.get("port"), DEFAULT_PORT),
            clean=True if clean is None else parse_bool(clean),
            variables={str(key): str(value) for key, value in variables.items()},
        )

    @classmethod
    def load(cls, path: Path) -> "SiteConfig":
        path = path.resolve()
        return cls.from_mapping(load_config(path), path.parent)

    @property
    def layout_path(self) -> Path:
        return self.src_dir / "layouts" / "main.html"

    @property
    def pages_dir(self) -> Path:
        return self.src_dir / "pages"

    @property
    def posts_dir(self) -> Path:
        return self.src_dir / "posts"

    @property
    def partials_dir(self) -> Path:
        return self.src_dir / "partials"
