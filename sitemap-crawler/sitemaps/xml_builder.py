"""
sitemaps.org XML sitemap.
The crawler cannot know real change frequencies or priorities, so every entry gets the same defaults.
"""

from datetime import date
from typing import List, Optional

from lxml import etree

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
DEFAULT_CHANGEFREQ = "monthly"
DEFAULT_PRIORITY = "0.8"


def build_xml_sitemap(urls: List[str], lastmod: Optional[date] = None) -> str:
    lastmod = (lastmod or date.today()).isoformat()
    urlset = etree.Element(f"{{{SITEMAP_NS}}}urlset", nsmap={None: SITEMAP_NS})
    for url in urls:
        entry = etree.SubElement(urlset, f"{{{SITEMAP_NS}}}url")
        etree.SubElement(entry, f"{{{SITEMAP_NS}}}loc").text = url
        etree.SubElement(entry, f"{{{SITEMAP_NS}}}lastmod").text = lastmod
        etree.SubElement(entry, f"{{{SITEMAP_NS}}}changefreq").text = DEFAULT_CHANGEFREQ
        etree.SubElement(entry, f"{{{SITEMAP_NS}}}priority").text = DEFAULT_PRIORITY
    return etree.tostring(urlset, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode("utf-8")
