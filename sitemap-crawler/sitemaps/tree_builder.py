"""
Hierarchical page tree for the visual sitemap.
Pages nest by URL path segment; intermediate segments that were never crawled still
get a node so that every crawled page has a parent chain back to the home page.
"""

from typing import Dict, Iterable, List
from urllib.parse import unquote, urlsplit

from crawler.normalizer import origin_of


def slug_title(segment: str) -> str:
    """'about-us' -> 'About Us'"""
    words = unquote(segment).replace("-", " ").replace("_", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words) or segment


def path_tree(urls: Iterable[str], base_url: str) -> Dict[str, Dict]:
    """
    Nested {segment: {"url", "crawled", "children"}} mapping, in first-seen order.
    URLs outside the base origin are ignored; the home page itself is not part of the mapping.
    """
    origin = origin_of(base_url)
    tree: Dict[str, Dict] = {}
    for url in urls:
        if origin_of(url) != origin:
            continue
        segments = [s for s in urlsplit(url).path.split("/") if s]
        node = tree
        for i, segment in enumerate(segments):
            if segment not in node:
                node[segment] = {
                    "url": f"{origin}/{'/'.join(segments[:i + 1])}",
                    "crawled": False,
                    "children": {},
                }
            if i == len(segments) - 1:
                node[segment]["url"] = url
                node[segment]["crawled"] = True
            node = node[segment]["children"]
    return tree


def _to_nodes(tree: Dict[str, Dict]) -> List[Dict]:
    return [
        {"url": item["url"], "title": slug_title(segment), "children": _to_nodes(item["children"])}
        for segment, item in tree.items()
    ]


def build_tree(urls: List[str], base_url: str) -> Dict:
    """Tree of {url, title, children} nodes rooted at the home page."""
    origin = origin_of(base_url) or base_url
    home = next((u for u in urls if origin_of(u) == origin and urlsplit(u).path.strip("/") == ""), origin + "/")
    return {
        "url": home,
        "title": "Home",
        "children": _to_nodes(path_tree(urls, base_url)),
    }


def count_nodes(node: Dict) -> int:
    return 1 + sum(count_nodes(child) for child in node["children"])
