"""
Flask API for the sitemap generator.
XML / HTML / visual sitemaps for a seed URL, plus download of stored XML sitemaps.
"""

import json
import time

from flask import Flask, jsonify, request, Response

from crawler.core import PERSISTENCE_ENABLED, logger
from crawler.aggregator import seo_issues
from crawler.engine import CrawlEngine
from crawler.errors import CrawlAbortedError
from crawler.models import CrawlBudget
from crawler.normalizer import canonicalize_seed, origin_of
from crawler.storage.mysql import MySQLSitemapStore, connect, persist_report
from crawler.validator import validate
from sitemaps import build_xml_sitemap, build_html_sitemap, build_tree

app = Flask(__name__)

XML_PREVIEW_CHARS = 500

# sitemaps table created once per process
_schema_ready = False


def get_store():
    """MySQL store for this request, or None when persistence is off or the DB is unreachable."""
    global _schema_ready
    if not PERSISTENCE_ENABLED:
        return None
    try:
        store = MySQLSitemapStore(connect())
    except Exception as e:
        logger.error(f"[DB] Error connecting to database: {e}")
        return None
    if not _schema_ready:
        try:
            store.ensure_schema()
        except Exception as e:
            logger.error(f"[DB] Failed to prepare schema: {e}")
            store.close()
            return None
        _schema_ready = True
    return store


def make_engine(budget: CrawlBudget) -> CrawlEngine:
    return CrawlEngine(budget)


class ApiError(Exception):
    def __init__(self, status, payload):
        super().__init__(payload.get("error"))
        self.status = status
        self.payload = payload


@app.errorhandler(ApiError)
def handle_api_error(error):
    return jsonify(error.payload), error.status


def _budget_from(body) -> CrawlBudget:
    try:
        return CrawlBudget.from_env(
            max_depth=body.get("maxDepth"),
            max_pages=body.get("maxPages"),
        )
    except (TypeError, ValueError) as e:
        raise ApiError(400, {"error": f"Invalid crawl settings: {e}"})


def _run_crawl():
    """
    FLOW: Reads {url} from the JSON body -> Validates format + safety -> Crawls ->
    Returns (report, validation). Raises ApiError for every client-visible failure.
    """
    body = request.get_json(silent=True) or {}
    url = (body.get("url") or "").strip()
    if not url:
        raise ApiError(400, {"error": "Starting URL is required."})

    try:
        seed = canonicalize_seed(url) if "://" in url else None
    except ValueError:
        seed = None
    if not seed or origin_of(seed) is None:
        raise ApiError(400, {
            "error": "Invalid URL format.",
            "suggestion": "Please enter a valid URL (e.g., https://example.com)",
        })

    budget = _budget_from(body)
    validation = validate(seed)
    if not validation.can_proceed:
        raise ApiError(400, {
            "error": "Cannot crawl this website safely",
            "issues": validation.issues,
            "warnings": validation.warnings,
            "isSafe": validation.is_safe,
        })
    if validation.warnings:
        logger.warning(f"[API] Warnings for {seed}: {validation.warnings}")

    try:
        report = make_engine(budget).crawl(seed)
    except CrawlAbortedError as e:
        raise ApiError(400, {"error": "Invalid URL format.", "message": str(e)})

    if not report.successful_urls:
        raise ApiError(404, {
            "error": "No URLs found.",
            "suggestion": "The site might have no internal links or uses JavaScript for navigation.",
            "failed": [o.to_dict() for o in report.failed_outcomes],
        })
    return report, validation


def _persist(report, sitemap_type, content):
    store = get_store()
    try:
        return persist_report(store, report, sitemap_type, content)
    finally:
        if store is not None:
            store.close()


# ============================================================
# SITEMAP ENDPOINTS
# ============================================================

@app.route('/api/xml-sitemap', methods=['POST'])
def xml_sitemap():
    start = time.time()
    report, validation = _run_crawl()
    urls = report.successful_urls
    xml = build_xml_sitemap(urls)
    sitemap_id = _persist(report, "xml", xml)
    preview = xml[:XML_PREVIEW_CHARS] + ("..." if len(xml) > XML_PREVIEW_CHARS else "")
    return jsonify({
        "message": "XML Sitemap generated successfully.",
        "sitemapId": sitemap_id,
        "urlCount": len(urls),
        "failedCount": report.fail_count,
        "duration": int((time.time() - start) * 1000),
        "xmlPreview": preview,
        "warnings": validation.warnings,
    })


@app.route('/api/xml-sitemap/<sitemap_id>/download')
def download_xml_sitemap(sitemap_id):
    store = get_store()
    if store is None:
        return jsonify({"error": "XML Sitemap not found."}), 404
    try:
        record = store.get(sitemap_id)
    finally:
        store.close()
    if not record or record.get("sitemap_type") != "xml":
        return jsonify({"error": "XML Sitemap not found."}), 404
    return Response(
        record["content"],
        mimetype="application/xml",
        headers={"Content-Disposition": f"attachment; filename=sitemap-{sitemap_id}.xml"},
    )


@app.route('/api/html-sitemap', methods=['POST'])
def html_sitemap():
    report, _ = _run_crawl()
    html = build_html_sitemap(report.successful_urls, report.base_origin)
    _persist(report, "html", html)
    return Response(html, mimetype="text/html")


@app.route('/api/visual-sitemap', methods=['POST'])
def visual_sitemap():
    report, validation = _run_crawl()
    urls = report.successful_urls
    tree = build_tree(urls, report.base_origin)
    _persist(report, "visual", json.dumps(tree))
    return jsonify({
        "message": "Visual sitemap data generated.",
        "pages": tree,
        "urlCount": len(urls),
        "seoIssues": seo_issues(report),
        "warnings": validation.warnings,
    })


# ============================================================
# ERROR HANDLERS
# ============================================================

@app.errorhandler(404)
def not_found(error):
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(500)
def server_error(error):
    cause = getattr(error, "original_exception", None) or error
    logger.error(f"[API] Unhandled error: {cause}")
    return jsonify({"error": "Failed to generate sitemap", "message": str(cause)}), 500


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
