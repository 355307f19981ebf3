"""
Command line entry for the sitemap crawler.
Validates the seed, crawls it, writes the requested sitemap format and prints a summary table.
"""

import argparse
import json
import sys

from tabulate import tabulate

from crawler.core import logger
from crawler.aggregator import seo_issues
from crawler.engine import CrawlEngine
from crawler.errors import CrawlAbortedError
from crawler.models import CrawlBudget
from crawler.normalizer import canonicalize_seed
from crawler.validator import validate
from sitemaps import build_xml_sitemap, build_html_sitemap, build_tree

FORMATS = ("xml", "html", "tree", "json")


def build_parser():
    parser = argparse.ArgumentParser(description="Crawl a website and generate a sitemap.")
    parser.add_argument("url", help="Seed URL (https:// is assumed when no scheme is given)")
    parser.add_argument("--format", choices=FORMATS, default="xml", help="Output format (default: xml)")
    parser.add_argument("--max-depth", type=int, help="Maximum link depth from the seed")
    parser.add_argument("--max-pages", type=int, help="Maximum number of pages to fetch")
    parser.add_argument("--delay", type=float, help="Seconds between requests (per worker)")
    parser.add_argument("--concurrency", type=int, help="Worker threads; 1 keeps the depth-first order")
    parser.add_argument("--no-render", action="store_true", help="Never launch a headless browser")
    parser.add_argument("--output", "-o", help="Write the sitemap to this file instead of stdout")
    parser.add_argument("--skip-validation", action="store_true", help="Skip the pre-flight safety check")
    parser.add_argument("--save", action="store_true", help="Persist the crawl record to MySQL")
    return parser


def render_output(report, fmt: str) -> str:
    urls = report.successful_urls
    if fmt == "xml":
        return build_xml_sitemap(urls)
    if fmt == "html":
        return build_html_sitemap(urls, report.base_origin)
    if fmt == "tree":
        return json.dumps(build_tree(urls, report.base_origin), indent=2)
    return json.dumps(report.to_dict(), indent=2)


def print_summary(report):
    rows = [
        ["Start URL", report.start_url],
        ["Status", report.status],
        ["Pages OK", report.success_count],
        ["Pages failed", report.fail_count],
        ["Skipped (budget)", report.skipped_count],
        ["Max depth reached", report.max_depth_reached],
        ["Avg load time (ms)", report.average_load_time_ms],
        ["Duration (s)", f"{report.duration_ms / 1000:.1f}"],
    ]
    rows.extend([f"Fetched via {method}", count] for method, count in report.method_counts.items())
    print(tabulate(rows, tablefmt="simple"), file=sys.stderr)

    if report.failed_outcomes:
        failed = [
            [o.url, o.error.value if o.error else "-", o.status_code or "-", o.retry_count]
            for o in report.failed_outcomes
        ]
        print(tabulate(failed, headers=["Failed URL", "Error", "Status", "Retries"], tablefmt="simple"),
              file=sys.stderr)

    issues = seo_issues(report)
    if issues:
        print(f"\n{len(issues)} page(s) with missing SEO metadata", file=sys.stderr)


def save_report(report, sitemap_type: str, content: str):
    from crawler.storage.mysql import MySQLSitemapStore, connect, persist_report

    try:
        store = MySQLSitemapStore(connect())
    except Exception as e:
        logger.error(f"[DB] Failed to connect to MySQL: {e}")
        return None
    try:
        store.ensure_schema()
        return persist_report(store, report, sitemap_type, content)
    except Exception as e:
        logger.error(f"[DB] Failed to prepare schema: {e}")
        return None
    finally:
        store.close()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        budget = CrawlBudget.from_env(
            max_depth=args.max_depth,
            max_pages=args.max_pages,
            request_delay=args.delay,
            concurrency=args.concurrency,
            render_enabled=False if args.no_render else None,
        )
    except ValueError as e:
        print(f"CONFIG_ERROR: {e}", file=sys.stderr)
        return 2

    try:
        url = canonicalize_seed(args.url)
    except ValueError as e:
        print(f"CRAWL_ABORTED: Unparseable seed URL {args.url!r}: {e}", file=sys.stderr)
        return 1

    if not args.skip_validation:
        validation = validate(url)
        for warning in validation.warnings:
            print(f"WARNING: {warning}", file=sys.stderr)
        if not validation.can_proceed:
            for issue in validation.issues:
                print(f"UNSAFE: {issue}", file=sys.stderr)
            return 1

    try:
        report = CrawlEngine(budget).crawl(url)
    except CrawlAbortedError as e:
        print(f"CRAWL_ABORTED: {e}", file=sys.stderr)
        return 1

    output = render_output(report, args.format)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(output)
        logger.info(f"[CLI] Wrote {args.format} output to {args.output}")
    else:
        print(output)

    print_summary(report)

    if args.save:
        sitemap_type = {"xml": "xml", "html": "html"}.get(args.format, "visual")
        sitemap_id = save_report(report, sitemap_type, output)
        if sitemap_id:
            print(f"Saved crawl record {sitemap_id}", file=sys.stderr)

    return 0 if report.success_count else 1


if __name__ == "__main__":
    sys.exit(main())
