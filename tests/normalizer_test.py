"""
URL normalization and link resolution
"""

import unittest

from crawler.normalizer import normalize, origin_of, is_same_origin, resolve_link, canonicalize_seed


class TestNormalize(unittest.TestCase):
    def test_trailing_slash_query_and_fragment_share_a_key(self):
        variants = [
            "https://a.com/x",
            "https://a.com/x/",
            "https://a.com/x?ref=1",
            "https://a.com/x#section",
            "https://a.com/x/?utm_source=mail#top",
        ]
        self.assertEqual({normalize(v) for v in variants}, {"https://a.com/x"})

    def test_normalizing_a_key_is_stable(self):
        key = normalize("https://a.com/x/?q=1")
        self.assertEqual(normalize(key), key)

    def test_scheme_and_host_are_lower_cased_and_default_port_dropped(self):
        self.assertEqual(normalize("HTTPS://Example.COM:443/Path/"), "https://example.com/Path")
        self.assertEqual(normalize("http://example.com:8080/a"), "http://example.com:8080/a")

    def test_root_url_normalizes_to_bare_origin(self):
        self.assertEqual(normalize("https://a.com/"), "https://a.com")
        self.assertEqual(normalize("https://a.com"), "https://a.com")

    def test_unparseable_input_returns_none(self):
        for bad in (None, "", "not a url", "mailto:me@a.com", "ftp://a.com/file", "http://[::1"):
            self.assertIsNone(normalize(bad), bad)


class TestOrigins(unittest.TestCase):
    def test_origin_of(self):
        self.assertEqual(origin_of("https://a.com/x?y=1"), "https://a.com")
        self.assertEqual(origin_of("http://a.com:81/"), "http://a.com:81")
        self.assertIsNone(origin_of("javascript:void(0)"))

    def test_same_origin_compares_scheme_host_and_port(self):
        self.assertTrue(is_same_origin("https://a.com/deep/page", "https://a.com"))
        self.assertFalse(is_same_origin("http://a.com/", "https://a.com"))
        self.assertFalse(is_same_origin("https://www.a.com/", "https://a.com"))
        self.assertFalse(is_same_origin("https://a.com:8443/", "https://a.com"))


class TestResolveLink(unittest.TestCase):
    def test_relative_links_resolve_against_the_page(self):
        self.assertEqual(resolve_link("../b", "https://a.com/x/y/"), "https://a.com/x/b")
        self.assertEqual(resolve_link("/c?d=1", "https://a.com/x"), "https://a.com/c?d=1")

    def test_non_navigational_links_are_skipped(self):
        for href in ("#top", "mailto:a@b.c", "tel:123", "javascript:void(0)", "data:text/html,hi", "  "):
            self.assertIsNone(resolve_link(href, "https://a.com/"), href)


class TestCanonicalizeSeed(unittest.TestCase):
    def test_missing_scheme_defaults_to_https(self):
        self.assertEqual(canonicalize_seed(" example.com "), "https://example.com/")

    def test_fragment_is_dropped_and_query_kept(self):
        self.assertEqual(canonicalize_seed("HTTP://a.com/x?y=1#frag"), "http://a.com/x?y=1")

    def test_port_without_scheme_still_defaults_to_https(self):
        self.assertEqual(canonicalize_seed("localhost:8080/docs"), "https://localhost:8080/docs")

    def test_other_schemes_are_not_rewritten(self):
        self.assertEqual(canonicalize_seed("mailto:a@b.com"), "mailto:a@b.com")
        self.assertIsNone(origin_of(canonicalize_seed("mailto:a@b.com")))


if __name__ == "__main__":
    unittest.main()
