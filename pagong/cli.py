from __future__ import annotations

import argparse
import datetime as dt
import os
import sys
import time
from pathlib import Path

from .builder import FEED_LIMIT, SiteBuilder
from .config import load_config, resolve_default_template
from .errors import PagongError
from .utils import parse_bool, parse_int


def build_site(args: argparse.Namespace) -> int:
    root = Path(args.root)
    content_dir = root / args.content
    output_dir = root / args.output

    build_workers = int(getattr(args, "build_workers", 0) or 0)
    if build_workers <= 0:
        build_workers = os.cpu_count() or 1
    build_workers = max(1, min(build_workers, 32))

    builder = SiteBuilder(
        content_dir,
        output_dir,
        default_template=resolve_default_template(args),
        dist_ext=args.generated_extension,
        feed_ext=args.feed_extension,
        site_url=(args.site_url or "").strip(),
        feed_limit=max(0, args.feed_limit),
        workers=build_workers,
        include_drafts=args.drafts,
        highlight=args.highlight,
        clean=args.clean,
        project_root=root,
        now=dt.datetime.now(),
    )
    try:
        report = builder.build()
    except PagongError as exc:
        print(f"Build aborted: {exc}", file=sys.stderr)
        return 1

    for error in sorted(report.errors, key=lambda e: str(e.path or "")):
        print(f"Skipped {error}", file=sys.stderr)
    print(
        f"Wrote {len(report.pages)} pages, {len(report.feeds)} feeds, "
        f"copied {len(report.copied)} files."
    )
    if not report.pages:
        print("No pages were generated.", file=sys.stderr)
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> None:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("root", nargs="?", default=".")
    pre_parser.add_argument(
        "--config",
        default="pagong.toml",
        help="Path to site config file (TOML/YAML/JSON), relative to the root.",
    )
    pre_args, _ = pre_parser.parse_known_args(argv)
    config_path = Path(pre_args.config)
    if not config_path.is_absolute():
        config_path = Path(pre_args.root) / config_path
    config = load_config(config_path)

    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: str) -> str:
        value = cfg_value(key, default)
        return default if value is None else str(value)

    def cfg_bool(key: str, default: bool) -> bool:
        value = cfg_value(key, default)
        return parse_bool(value) if value is not None else default

    def cfg_int(key: str, default: int) -> int:
        value = cfg_value(key, default)
        return parse_int(value, default)

    parser = argparse.ArgumentParser(description="A static site generator for slow connections.")
    parser.add_argument(
        "root",
        nargs="?",
        default=pre_args.root,
        help="Project root holding the content directory (default: current directory).",
    )
    parser.add_argument("--config", default=str(config_path), help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument(
        "--content",
        default=cfg_str("content", "content"),
        help="Directory containing Markdown sources, relative to the root.",
    )
    parser.add_argument(
        "--output",
        default=cfg_str("output", "dist"),
        help="Output directory for the site, relative to the root.",
    )
    parser.add_argument(
        "-t",
        "--default-template",
        default=cfg_str("default_template", ""),
        help="HTML template for sources that do not name one (default: embedded template).",
    )
    parser.add_argument(
        "-e",
        "--generated-extension",
        default=cfg_str("generated_extension", "html"),
        help="File extension for the converted Markdown files.",
    )
    parser.add_argument(
        "-a",
        "--feed-extension",
        default=cfg_str("feed_extension", "atom"),
        help="File extension of the Atom feed skeletons.",
    )
    parser.add_argument(
        "--site-url",
        default=cfg_str("site_url", ""),
        help="Public site URL, used for feed permalinks when a feed has no link.",
    )
    parser.add_argument(
        "--feed-limit",
        default=cfg_int("feed_limit", FEED_LIMIT),
        type=int,
        help="Maximum number of entries per feed (0 = unlimited).",
    )
    parser.add_argument(
        "--build-workers",
        default=cfg_int("build_workers", 0),
        type=int,
        help="Number of worker threads for parsing/rendering (0 = auto).",
    )
    parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean", True),
        help="Clean output directory before build.",
    )
    parser.add_argument(
        "--drafts",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("drafts", False),
        help="Also build entries marked as drafts.",
    )
    parser.add_argument(
        "--highlight",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("highlight", True),
        help="Highlight fenced code blocks with Pygments.",
    )
    args = parser.parse_args(argv)
    start = time.perf_counter()
    code = build_site(args)
    elapsed = time.perf_counter() - start
    print(f"Build completed in {elapsed:.2f}s.")
    if code == 0:
        print(f"Site generated in: {Path(args.root) / args.output}")
    sys.exit(code)


if __name__ == "__main__":
    main()
