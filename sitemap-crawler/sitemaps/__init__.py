from sitemaps.xml_builder import build_xml_sitemap
from sitemaps.html_builder import build_html_sitemap
from sitemaps.tree_builder import build_tree
