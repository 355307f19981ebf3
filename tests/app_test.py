"""
Flask API routes with crawl, validation and storage mocked out
"""

import unittest
from unittest.mock import MagicMock, patch

import app as api
from crawler.aggregator import ResultAggregator
from crawler.errors import CrawlAbortedError
from crawler.models import FetchMethod, PageMetadata, PageOutcome
from crawler.validator import ValidationResult


def make_report(urls):
    aggregator = ResultAggregator("https://a.com/", "https://a.com")
    for depth, url in enumerate(urls):
        aggregator.append(PageOutcome(
            url=url, normalized_url=url.rstrip("/"), depth=min(depth, 1), success=True,
            method=FetchMethod.LIGHTWEIGHT, status_code=200, duration_ms=50,
            metadata=PageMetadata(title="T"),
        ))
    return aggregator.finalize()


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.client = api.app.test_client()
        self.validation = ValidationResult(url="https://a.com/")
        self.engine = MagicMock()
        self.engine.crawl.return_value = make_report(["https://a.com/", "https://a.com/about"])
        self.store = MagicMock()
        self.store.save.return_value = "sitemap-1"

        patches = [
            patch.object(api, "validate", return_value=self.validation),
            patch.object(api, "make_engine", return_value=self.engine),
            patch.object(api, "get_store", return_value=self.store),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)


class TestXmlSitemapRoute(ApiTestCase):
    def test_generates_and_persists(self):
        resp = self.client.post("/api/xml-sitemap", json={"url": "https://a.com"})

        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(data["sitemapId"], "sitemap-1")
        self.assertEqual(data["urlCount"], 2)
        self.assertIn("<loc>https://a.com/about</loc>", data["xmlPreview"])
        self.engine.crawl.assert_called_once_with("https://a.com/")
        self.store.save.assert_called_once()
        self.store.close.assert_called_once()

    def test_missing_url(self):
        resp = self.client.post("/api/xml-sitemap", json={})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "Starting URL is required.")

    def test_relative_url_is_rejected(self):
        resp = self.client.post("/api/xml-sitemap", json={"url": "a.com"})
        self.assertEqual(resp.status_code, 400)
        self.engine.crawl.assert_not_called()

    def test_unsafe_site_is_rejected(self):
        self.validation.add_issue("SSL certificate has expired")
        resp = self.client.post("/api/xml-sitemap", json={"url": "https://a.com"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["issues"], ["SSL certificate has expired"])
        self.engine.crawl.assert_not_called()

    def test_empty_crawl_is_404(self):
        self.engine.crawl.return_value = make_report([])
        resp = self.client.post("/api/xml-sitemap", json={"url": "https://a.com"})
        self.assertEqual(resp.status_code, 404)

    def test_aborted_crawl_is_400(self):
        self.engine.crawl.side_effect = CrawlAbortedError("no origin")
        resp = self.client.post("/api/xml-sitemap", json={"url": "https://a.com"})
        self.assertEqual(resp.status_code, 400)

    def test_invalid_budget_is_400(self):
        resp = self.client.post("/api/xml-sitemap", json={"url": "https://a.com", "maxPages": 0})
        self.assertEqual(resp.status_code, 400)

    def test_persistence_failure_does_not_fail_the_request(self):
        self.store.save.side_effect = RuntimeError("db down")
        resp = self.client.post("/api/xml-sitemap", json={"url": "https://a.com"})
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.get_json()["sitemapId"])

    def test_unexpected_error_is_500(self):
        self.engine.crawl.side_effect = RuntimeError("kaboom")
        resp = self.client.post("/api/xml-sitemap", json={"url": "https://a.com"})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json()["message"], "kaboom")


class TestDownloadRoute(ApiTestCase):
    def test_download(self):
        self.store.get.return_value = {"sitemap_type": "xml", "content": "<urlset/>"}
        resp = self.client.get("/api/xml-sitemap/abc/download")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.mimetype, "application/xml")
        self.assertIn("sitemap-abc.xml", resp.headers["Content-Disposition"])
        self.assertEqual(resp.get_data(as_text=True), "<urlset/>")

    def test_unknown_id(self):
        self.store.get.return_value = None
        resp = self.client.get("/api/xml-sitemap/abc/download")
        self.assertEqual(resp.status_code, 404)


class TestHtmlAndVisualRoutes(ApiTestCase):
    def test_html_sitemap(self):
        resp = self.client.post("/api/html-sitemap", json={"url": "https://a.com/"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.mimetype, "text/html")
        self.assertIn("About", resp.get_data(as_text=True))

    def test_visual_sitemap(self):
        self.validation.warnings.append("Site uses HTTP (not HTTPS) - data is not encrypted")
        resp = self.client.post("/api/visual-sitemap", json={"url": "https://a.com/"})
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(data["pages"]["title"], "Home")
        self.assertEqual(data["pages"]["children"][0]["url"], "https://a.com/about")
        self.assertEqual(data["urlCount"], 2)
        self.assertEqual(len(data["warnings"]), 1)
        self.assertEqual(self.store.save.call_args.args[0]["sitemap_type"], "visual")


class TestGetStore(unittest.TestCase):
    def setUp(self):
        self.conn = MagicMock()
        self.cursor = self.conn.cursor.return_value.__enter__.return_value
        patches = [
            patch.object(api, "PERSISTENCE_ENABLED", True),
            patch.object(api, "connect", return_value=self.conn),
            patch.object(api, "_schema_ready", False),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def test_schema_is_created_once_per_process(self):
        self.assertIsNotNone(api.get_store())
        self.assertIsNotNone(api.get_store())

        creates = [c for c in self.cursor.execute.call_args_list if "CREATE TABLE" in c.args[0]]
        self.assertEqual(len(creates), 1)

    def test_schema_failure_means_no_store(self):
        self.cursor.execute.side_effect = RuntimeError("access denied")
        self.assertIsNone(api.get_store())
        self.conn.close.assert_called_once()

    def test_persistence_disabled(self):
        with patch.object(api, "PERSISTENCE_ENABLED", False):
            self.assertIsNone(api.get_store())
        api.connect.assert_not_called()


if __name__ == "__main__":
    unittest.main()
