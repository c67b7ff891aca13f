"""CLI entrypoint for mirroring one website."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import signal
import sys
from typing import Any

from tqdm import tqdm

if __package__ in {None, ""}:
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from sitemirror.crawler import (
    DEFAULT_OUTPUT_DIR,
    DEFAULT_STATE_FILENAME,
    CrawlConfig,
    CrawlEvent,
    CrawlService,
    EventType,
    FetchBackend,
    load_config,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Crawl one website and save a local mirror with screenshots and assets.",
    )

    parser.add_argument("--url", type=str, default=None, help="Start URL. Overrides config url.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML crawl config.",
    )
    parser.add_argument(
        "--output_dir",
        type=Path,
        default=None,
        help=f"Root output directory (default: {DEFAULT_OUTPUT_DIR}).",
    )

    parser.add_argument("--max_depth", type=int, default=None)
    parser.add_argument(
        "--crawl_delay_ms",
        type=int,
        default=None,
        help="Pause between pages in milliseconds.",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Glob pattern for URLs to skip, e.g. '*/admin*' (repeatable).",
    )

    parser.add_argument(
        "--no_screenshot_desktop",
        dest="screenshot_desktop",
        action="store_false",
        default=None,
        help="Skip desktop screenshots.",
    )
    parser.add_argument(
        "--no_screenshot_mobile",
        dest="screenshot_mobile",
        action="store_false",
        default=None,
        help="Skip mobile screenshots.",
    )

    parser.add_argument(
        "--backend",
        type=str,
        choices=[backend.value for backend in FetchBackend],
        default=None,
        help="Page loader: selenium (rendered DOM, screenshots) or requests (static HTML).",
    )
    parser.add_argument("--max_concurrent_downloads", type=int, default=None)

    parser.add_argument(
        "--print_stats_json",
        action="store_true",
        help="Print full stats JSON in stdout after run.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CrawlConfig:
    if args.config is not None:
        payload = load_config(args.config).to_dict()
    else:
        payload = {}

    if args.url is not None:
        payload["url"] = args.url
    if not payload.get("url"):
        raise ValueError("No start URL provided. Use --url or --config.")

    if args.output_dir is not None:
        payload["output_dir"] = str(args.output_dir)
    if args.max_depth is not None:
        payload["max_depth"] = args.max_depth
    if args.crawl_delay_ms is not None:
        payload["crawl_delay_ms"] = args.crawl_delay_ms
    if args.exclude:
        payload["exclude_patterns"] = list(args.exclude)
    if args.screenshot_desktop is not None:
        payload["screenshot_desktop"] = args.screenshot_desktop
    if args.screenshot_mobile is not None:
        payload["screenshot_mobile"] = args.screenshot_mobile
    if args.backend is not None:
        payload["backend"] = args.backend
    if args.max_concurrent_downloads is not None:
        payload["max_concurrent_downloads"] = args.max_concurrent_downloads

    return CrawlConfig.from_dict(payload)


def setup_logging(output_dir: Path, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "crawl.log"

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # Trafilatura warns "discarding data: None" on noisy pages, and selenium
    # and urllib3 log every driver round-trip at DEBUG.
    logging.getLogger("trafilatura").setLevel(logging.ERROR)
    logging.getLogger("trafilatura.core").setLevel(logging.ERROR)
    logging.getLogger("selenium").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class ProgressReporter:
    """Render crawl events as a tqdm bar over discovered pages."""

    def __init__(self) -> None:
        self.progress = tqdm(total=1, desc="Crawling", unit="page")

    def __call__(self, event: CrawlEvent) -> None:
        if event.type == EventType.PROGRESS:
            total = max(int(event.data.get("total") or 0), 1)
            processed = int(event.data.get("processed") or 0)
            self.progress.total = total
            self.progress.n = min(processed, total)
            current = event.data.get("current_url")
            if current:
                self.progress.set_postfix_str(str(current), refresh=False)
            self.progress.refresh()
        elif event.type == EventType.STATUS:
            self.progress.set_description_str(str(event.data.get("message", ""))[:60])

    def close(self) -> None:
        self.progress.close()


def print_summary(result: dict[str, Any], *, print_stats_json: bool) -> None:
    paths = result.get("paths", {})
    stats = result.get("stats", {})
    assets = result.get("assets") or {}

    title = "Crawl Cancelled" if result.get("status") == "cancelled" else "Crawl Complete"
    print(f"\n=== {title} ===")
    print(f"start_url: {result.get('start_url')}")
    print(f"output_folder: {paths.get('output_folder')}")
    print(f"sitemap: {paths.get('sitemap')}")
    print(f"metadata: {paths.get('summary')}")
    print(f"errors: {paths.get('errors')}")

    print("\n--- Core Stats ---")
    print(f"total_pages: {result.get('total_pages')}")
    print(f"total_screenshots: {result.get('total_screenshots')}")
    print(f"total_assets: {result.get('total_assets')}")
    for key in ["images", "stylesheets", "scripts", "fonts", "failed"]:
        if key in assets:
            print(f"assets_{key}: {assets[key]}")
    for key in ["pages_ok", "pages_error", "links_seen", "duration_seconds"]:
        if key in stats:
            print(f"{key}: {stats[key]}")

    if print_stats_json:
        print("\n--- Full Stats JSON ---")
        print(json.dumps(stats, indent=2, sort_keys=True))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    output_dir = args.output_dir or Path(DEFAULT_OUTPUT_DIR)
    setup_logging(output_dir, verbose=args.verbose)

    try:
        config = build_config(args)
    except Exception as exc:
        logging.error("Failed to build config: %s", exc)
        return 2

    logging.info(
        "Starting crawl: url=%s, output_dir=%s, max_depth=%d, backend=%s",
        config.url,
        config.output_dir,
        config.max_depth,
        config.backend.value,
    )

    service = CrawlService(state_path=config.state_path or Path(config.output_dir) / DEFAULT_STATE_FILENAME)
    reporter = ProgressReporter()
    service.subscribe(reporter)

    previous_handler = signal.getsignal(signal.SIGINT)

    def handle_sigint(signum, frame) -> None:
        if not service.cancel_crawl():
            raise KeyboardInterrupt

    signal.signal(signal.SIGINT, handle_sigint)
    try:
        service.start_crawl(config)
        result = service.wait()
    except KeyboardInterrupt:
        logging.error("Interrupted by user")
        return 130
    except Exception:
        logging.exception("Crawl failed")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        reporter.close()

    if result is None:
        logging.error("Crawl finished without a summary")
        return 1

    print_summary(result, print_stats_json=args.print_stats_json)
    if result.get("status") == "cancelled":
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
