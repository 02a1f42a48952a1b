"""
Run one Naver crawl job from the command line.

Usage:
    python scripts/run_crawl.py "https://blog.naver.com/someblog" --max-pages 3
    python scripts/run_crawl.py "https://smartstore.naver.com/store/products/123" \
        --sort latest --min-rating 4 --output reviews.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Windows console UTF-8 fix
if sys.platform == "win32":
    import io
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

from dotenv import load_dotenv
load_dotenv()

# Make the project root importable
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.crawler import CrawlerConfig, FatalCrawlError, run_crawl
from src.crawler.logging_utils import configure_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl a Naver blog, blog category or SmartStore page")
    parser.add_argument("url", help="Target URL")
    parser.add_argument("--max-pages", type=int, default=None)
    parser.add_argument("--max-items", type=int, default=None)
    parser.add_argument("--sort", choices=["ranking", "latest", "high-rating", "low-rating"], default=None)
    parser.add_argument("--min-rating", type=float, default=None)
    parser.add_argument("--max-rating", type=float, default=None)
    parser.add_argument("--keyword", action="append", default=[], help="Keep records containing this text")
    parser.add_argument("--exclude", action="append", default=[], help="Drop records containing this text")
    parser.add_argument("--output", "-o", default=None, help="Write results as JSON to this file")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> dict:
    settings = {"maxPages": args.max_pages, "maxItems": args.max_items, "sort": args.sort}
    filters = {}
    if args.min_rating is not None or args.max_rating is not None:
        filters["rating"] = {"min": args.min_rating, "max": args.max_rating}
    if args.keyword:
        filters["keywords"] = args.keyword
    if args.exclude:
        filters["excludeKeywords"] = args.exclude
    if filters:
        settings["filters"] = filters
    return {k: v for k, v in settings.items() if v is not None}


def print_progress(event: dict) -> None:
    if event.get("isComplete"):
        return
    print(
        f"[{event['currentPage']}/{event['totalPages']}] "
        f"found={event['itemsFound']} crawled={event['itemsCrawled']} {event['message']}"
    )


def print_error(message: str) -> None:
    print(f"  ! {message}", file=sys.stderr)


async def main(argv=None) -> int:
    args = parse_args(argv)
    config = CrawlerConfig.from_env()
    if args.headful:
        config.headless = False
    configure_logging(config.log_level)

    try:
        records = await run_crawl(
            args.url,
            build_settings(args),
            progress_sink=print_progress,
            error_sink=print_error,
            config=config,
        )
    except FatalCrawlError as e:
        print(f"Crawl failed: {e}", file=sys.stderr)
        return 1

    results = [record.to_dict() for record in records]
    print(f"\nCollected {len(results)} records")

    if args.output:
        Path(args.output).write_text(json.dumps(results, ensure_ascii=False, indent=2), encoding="utf-8")
        print(f"Results written to {args.output}")
    else:
        print(json.dumps(results[:5], ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
