"""
Nested HTML sitemap: one <ul> level per URL path segment.
"""

from html import escape
from typing import Dict, List

from crawler.normalizer import origin_of
from sitemaps.tree_builder import path_tree, slug_title

EMPTY_SITEMAP = "<h1>No pages were found during the crawl.</h1>"

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>HTML Sitemap for {base}</title>
    <style>
        body {{ font-family: Arial, sans-serif; padding: 20px; background-color: #f4f4f4; }}
        h1 {{ color: #333; }}
        ul {{ list-style: none; padding-left: 20px; }}
        ul li {{ margin: 5px 0; }}
        a {{ text-decoration: none; color: #007bff; }}
        a:hover {{ text-decoration: underline; }}
    </style>
</head>
<body>
    <h1>HTML Sitemap for: <a href="{base}">{base}</a></h1>
    <div id="sitemap-container">
        {body}
    </div>
</body>
</html>
"""


def _build_list(tree: Dict[str, Dict]) -> str:
    parts = ["<ul>"]
    for segment, item in tree.items():
        parts.append(f'<li><a href="{escape(item["url"])}">{escape(slug_title(segment))}</a>')
        if item["children"]:
            parts.append(_build_list(item["children"]))
        parts.append("</li>")
    parts.append("</ul>")
    return "".join(parts)


def build_html_sitemap(urls: List[str], start_url: str) -> str:
    if not urls:
        return EMPTY_SITEMAP

    base = origin_of(start_url) or origin_of(urls[0]) or start_url
    tree = path_tree(urls, base)
    home = [u for u in urls if origin_of(u) == base and u.rstrip("/") == base]
    body = ""
    if home:
        body = f'<ul><li><a href="{escape(home[0])}">Home</a></li></ul>'
    if tree:
        body += _build_list(tree)
    return _PAGE_TEMPLATE.format(base=escape(base), body=body)
