"""
Crawl engine end-to-end scenarios with a scripted dispatcher
"""

import threading
import time
import unittest
from unittest.mock import MagicMock

from crawler.dispatcher import FetchDispatcher
from crawler.engine import CrawlEngine, PolitenessGate
from crawler.errors import CrawlAbortedError, ErrorClass
from crawler.fetcher import LightweightFetcher
from crawler.models import CrawlBudget, FetchMethod, FetchResult, PageMetadata
from crawler.normalizer import normalize


class ScriptedDispatcher:
    """
    Serves canned results. `site` maps URL -> list of links, or -> a list of FetchResults
    consumed one per dispatch (the last one repeats).
    """

    def __init__(self, site, can_render=False):
        self.site = site
        self.can_render = can_render
        self.calls = []
        self.browsers = []
        self._lock = threading.Lock()

    def resolve(self, url, browser=None, timeout=None):
        with self._lock:
            self.calls.append(url)
            self.browsers.append(browser)
        entry = self.site.get(url)
        if entry is None:
            return FetchResult(url=url, method=FetchMethod.LIGHTWEIGHT, success=False, status_code=404,
                               error=ErrorClass.HTTP_4XX, error_message="http error: 404")
        if entry and isinstance(entry[0], FetchResult):
            return entry.pop(0) if len(entry) > 1 else entry[0]
        return FetchResult(
            url=url, method=FetchMethod.LIGHTWEIGHT, success=True, final_url=url, status_code=200,
            html="<html></html>", duration_ms=10, links=tuple(entry), metadata=PageMetadata(title=url),
        )


def failure(error_class, attempts=1):
    return FetchResult(url="", method=FetchMethod.LIGHTWEIGHT, success=False, attempts=attempts,
                       error=error_class, error_message=error_class.value)


def budget(**kwargs):
    params = dict(max_depth=2, max_pages=30, max_retries=2, request_delay=0, max_children_per_page=10,
                  render_enabled=False, concurrency=1)
    params.update(kwargs)
    return CrawlBudget(**params)


class TestEndToEnd(unittest.TestCase):
    def test_same_origin_crawl_with_depth_and_page_budget(self):
        site = {
            "https://example.com/": [
                "https://example.com/a", "https://example.com/b", "https://example.com/c",
                "https://other.com/x",
            ],
            "https://example.com/a": ["https://example.com/a/deeper"],
            "https://example.com/b": [],
            "https://example.com/c": [],
        }
        dispatcher = ScriptedDispatcher(site)
        report = CrawlEngine(budget(max_depth=1, max_pages=5), dispatcher).crawl("https://example.com")

        self.assertEqual(report.success_count, 4)
        self.assertEqual(report.fail_count, 0)
        self.assertEqual(report.total, 4)
        self.assertNotIn("https://other.com/x", dispatcher.calls)
        self.assertNotIn("https://example.com/a/deeper", dispatcher.calls)
        self.assertEqual(report.base_origin, "https://example.com")

    def test_server_error_twice_then_ok_records_two_retries(self):
        session = MagicMock()
        ok_html = "<html><body>" + "<p>real server rendered content</p>" * 10 + "</body></html>"
        responses = []
        for status in (500, 500, 200):
            r = MagicMock()
            r.status_code = status
            r.headers = {"Content-Type": "text/html"}
            r.text = ok_html
            r.url = "https://example.com/"
            responses.append(r)
        session.get.side_effect = responses
        fetcher = LightweightFetcher(session=session, max_retries=2, base_delay=0.01, sleep=MagicMock())
        dispatcher = FetchDispatcher(fetcher, None, render_enabled=False)

        report = CrawlEngine(budget(), dispatcher).crawl("https://example.com/")

        self.assertEqual(report.total, 1)
        outcome = report.outcomes[0]
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.retry_count, 2)
        self.assertEqual(session.get.call_count, 3)

    def test_retryable_failure_is_attempted_max_retries_plus_one_times(self):
        site = {"https://example.com/": [failure(ErrorClass.HTTP_5XX)]}
        dispatcher = ScriptedDispatcher(site)
        report = CrawlEngine(budget(max_retries=2), dispatcher).crawl("https://example.com/")

        self.assertEqual(dispatcher.calls.count("https://example.com/"), 3)
        self.assertEqual(report.fail_count, 1)
        self.assertEqual(report.outcomes[0].error, ErrorClass.HTTP_5XX)
        self.assertEqual(report.outcomes[0].retry_count, 2)

    def test_terminal_failure_is_not_retried(self):
        dispatcher = ScriptedDispatcher({"https://example.com/": ["https://example.com/missing"]})
        report = CrawlEngine(budget(), dispatcher).crawl("https://example.com/")

        self.assertEqual(dispatcher.calls.count("https://example.com/missing"), 1)
        self.assertEqual(report.success_count, 1)
        self.assertEqual(report.fail_count, 1)
        self.assertEqual(report.failed_outcomes[0].error, ErrorClass.HTTP_4XX)

    def test_retry_is_dispatched_before_fresh_targets(self):
        site = {
            "https://example.com/": ["https://example.com/flaky", "https://example.com/next"],
            "https://example.com/flaky": [failure(ErrorClass.TIMEOUT), FetchResult(
                url="https://example.com/flaky", method=FetchMethod.LIGHTWEIGHT, success=True, links=())],
            "https://example.com/next": [],
        }
        dispatcher = ScriptedDispatcher(site)
        CrawlEngine(budget(), dispatcher).crawl("https://example.com/")
        self.assertEqual(dispatcher.calls, [
            "https://example.com/", "https://example.com/flaky", "https://example.com/flaky",
            "https://example.com/next",
        ])

    def test_seed_redirect_to_another_host_moves_the_crawl(self):
        home = FetchResult(
            url="https://example.com/", method=FetchMethod.LIGHTWEIGHT, success=True,
            final_url="https://www.example.com/", status_code=200, html="<html></html>",
            links=("https://www.example.com/about", "https://www.example.com/contact", "https://www.example.com/"),
            metadata=PageMetadata(title="Home"),
        )
        dispatcher = ScriptedDispatcher({
            "https://example.com/": [home],
            "https://www.example.com/about": [],
            "https://www.example.com/contact": [],
        })
        report = CrawlEngine(budget(), dispatcher).crawl("https://example.com/")

        self.assertEqual(report.total, 3)
        self.assertEqual(report.success_count, 3)
        self.assertEqual(report.base_origin, "https://www.example.com")
        self.assertEqual(report.successful_urls[0], "https://www.example.com/")
        self.assertNotIn("https://www.example.com/", dispatcher.calls)
        self.assertEqual(report.start_url, "https://example.com/")


class TestTraversalInvariants(unittest.TestCase):
    def setUp(self):
        self.site = {
            "https://example.com/": ["https://example.com/a", "https://example.com/b", "https://example.com/"],
            "https://example.com/a": ["https://example.com/a/1", "https://example.com/b/", "https://example.com/a/2"],
            "https://example.com/a/1": ["https://example.com/a/1/x"],
            "https://example.com/a/2": [],
            "https://example.com/b": ["https://example.com/b/1?utm=1"],
            "https://example.com/b/1?utm=1": [],
            "https://example.com/a/1/x": ["https://example.com/a/1/x/y"],
        }

    def test_depth_first_order(self):
        dispatcher = ScriptedDispatcher(self.site)
        CrawlEngine(budget(max_depth=2), dispatcher).crawl("https://example.com/")
        self.assertEqual(dispatcher.calls, [
            "https://example.com/",
            "https://example.com/a",
            "https://example.com/a/1",
            "https://example.com/a/2",
            "https://example.com/b",
            "https://example.com/b/1?utm=1",
        ])

    def test_depth_dedup_and_visited_invariants(self):
        dispatcher = ScriptedDispatcher(self.site)
        report = CrawlEngine(budget(max_depth=2), dispatcher).crawl("https://example.com/")

        keys = [o.normalized_url for o in report.outcomes]
        self.assertEqual(len(keys), len(set(keys)))
        self.assertEqual(len({normalize(u) for u in dispatcher.calls}), len(dispatcher.calls))
        self.assertEqual(report.total, report.success_count + report.fail_count)

        by_url = {o.url: o for o in report.outcomes}
        for outcome in report.outcomes:
            self.assertLessEqual(outcome.depth, 2)
            if outcome.parent_url:
                self.assertEqual(outcome.depth, by_url[outcome.parent_url].depth + 1)

    def test_page_budget_is_never_exceeded(self):
        links = [f"https://example.com/p{i}" for i in range(10)]
        dispatcher = ScriptedDispatcher({"https://example.com/": links, **{u: [] for u in links}})
        report = CrawlEngine(budget(max_pages=3), dispatcher).crawl("https://example.com/")

        self.assertEqual(len(dispatcher.calls), 3)
        self.assertEqual(report.total, 3)
        self.assertEqual(report.skipped_count, 8)

    def test_child_cap(self):
        links = [f"https://example.com/p{i}" for i in range(5)]
        dispatcher = ScriptedDispatcher({"https://example.com/": links, **{u: [] for u in links}})
        report = CrawlEngine(budget(max_children_per_page=2), dispatcher).crawl("https://example.com/")
        self.assertEqual(dispatcher.calls, ["https://example.com/", "https://example.com/p0", "https://example.com/p1"])
        self.assertEqual(report.success_count, 3)


class TestFailureHandling(unittest.TestCase):
    def test_unexpected_exception_degrades_one_page(self):
        dispatcher = ScriptedDispatcher({
            "https://example.com/": ["https://example.com/boom", "https://example.com/fine"],
            "https://example.com/fine": [],
        })
        original = dispatcher.resolve

        def resolve(url, browser=None, timeout=None):
            if url.endswith("/boom"):
                raise RuntimeError("parser exploded")
            return original(url, browser, timeout)

        dispatcher.resolve = resolve
        report = CrawlEngine(budget(), dispatcher).crawl("https://example.com/")

        self.assertEqual(report.success_count, 2)
        self.assertEqual(report.fail_count, 1)
        self.assertEqual(report.failed_outcomes[0].error, ErrorClass.EXTRACTION_ERROR)

    def test_unusable_seed_aborts_before_dispatch(self):
        dispatcher = ScriptedDispatcher({})
        engine = CrawlEngine(budget(), dispatcher)
        for seed in ("ftp://example.com/", "http://", "https://[::1", "mailto:a@b", "javascript:alert(1)"):
            with self.assertRaises(CrawlAbortedError):
                engine.crawl(seed)
        self.assertEqual(dispatcher.calls, [])

    def test_shared_browser_is_passed_through_and_closed_once(self):
        dispatcher = ScriptedDispatcher({
            "https://example.com/": ["https://example.com/a"],
            "https://example.com/a": [],
        }, can_render=True)
        browser = MagicMock()
        factory = MagicMock(return_value=browser)

        CrawlEngine(budget(), dispatcher, browser_factory=factory).crawl("https://example.com/")

        factory.assert_called_once()
        browser.close.assert_called_once()
        self.assertEqual(dispatcher.browsers, [browser, browser])

    def test_browser_closed_when_the_run_blows_up(self):
        dispatcher = ScriptedDispatcher({"https://example.com/": []}, can_render=True)
        browser = MagicMock()
        engine = CrawlEngine(budget(), dispatcher, browser_factory=MagicMock(return_value=browser))
        engine.process = MagicMock(side_effect=KeyboardInterrupt)

        with self.assertRaises(KeyboardInterrupt):
            engine.crawl("https://example.com/")
        browser.close.assert_called_once()

    def test_no_browser_without_render_capability(self):
        factory = MagicMock()
        CrawlEngine(budget(), ScriptedDispatcher({"https://example.com/": []}), browser_factory=factory) \
            .crawl("https://example.com/")
        factory.assert_not_called()


class TestPoliteness(unittest.TestCase):
    def test_gate_spaces_dispatch_starts(self):
        sleep = MagicMock()
        clock = MagicMock(side_effect=[100.0, 100.5, 100.5, 103.0, 103.0])
        gate = PolitenessGate(1.5, sleep=sleep, clock=clock)
        gate.wait()
        gate.wait()
        gate.wait()
        sleep.assert_called_once_with(1.0)

    def test_gate_measures_from_the_end_of_a_finished_dispatch(self):
        sleep = MagicMock()
        clock = MagicMock(side_effect=[100.0, 102.0, 102.0, 103.5])
        gate = PolitenessGate(1.5, sleep=sleep, clock=clock)
        gate.wait()
        gate.finished()
        gate.wait()
        sleep.assert_called_once_with(1.5)

    def test_slow_fetches_still_get_the_full_delay(self):
        sleep = MagicMock()
        links = ["https://example.com/a", "https://example.com/b"]
        dispatcher = ScriptedDispatcher({"https://example.com/": links, **{u: [] for u in links}})
        fast_resolve = dispatcher.resolve

        def slow_resolve(url, browser=None, timeout=None):
            time.sleep(0.3)
            return fast_resolve(url, browser, timeout)

        dispatcher.resolve = slow_resolve
        CrawlEngine(budget(request_delay=0.2), dispatcher, sleep=sleep).crawl("https://example.com/")

        self.assertEqual(len(dispatcher.calls), 3)
        self.assertEqual(sleep.call_count, 2)
        for call in sleep.call_args_list:
            self.assertGreater(call.args[0], 0.15)

    def test_delay_between_every_dispatch(self):
        sleep = MagicMock()
        links = ["https://example.com/a", "https://example.com/b"]
        dispatcher = ScriptedDispatcher({"https://example.com/": links, **{u: [] for u in links}})
        CrawlEngine(budget(request_delay=1.5), dispatcher, sleep=sleep).crawl("https://example.com/")

        self.assertEqual(len(dispatcher.calls), 3)
        self.assertEqual(sleep.call_count, 2)
        for call in sleep.call_args_list:
            self.assertGreater(call.args[0], 1.0)
            self.assertLessEqual(call.args[0], 1.5)


class TestWorkerPool(unittest.TestCase):
    def test_pool_respects_dedup_and_budget(self):
        children = [f"https://example.com/c{i}" for i in range(6)]
        site = {"https://example.com/": children}
        for i, child in enumerate(children):
            site[child] = [children[(i + 1) % len(children)], "https://example.com/"]
        dispatcher = ScriptedDispatcher(site)

        report = CrawlEngine(budget(concurrency=3), dispatcher).crawl("https://example.com/")

        self.assertEqual(report.success_count, 7)
        self.assertEqual(len(dispatcher.calls), len(set(dispatcher.calls)))

    def test_pool_page_budget_is_shared(self):
        children = [f"https://example.com/c{i}" for i in range(10)]
        dispatcher = ScriptedDispatcher({"https://example.com/": children, **{u: [] for u in children}})

        report = CrawlEngine(budget(concurrency=4, max_pages=5), dispatcher).crawl("https://example.com/")

        self.assertEqual(len(dispatcher.calls), 5)
        self.assertEqual(report.total, 5)


if __name__ == "__main__":
    unittest.main()
