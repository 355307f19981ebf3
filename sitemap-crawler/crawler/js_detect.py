"""
Detect whether a page requires JavaScript rendering.
Used to escalate React / SPA pages only when necessary.
"""

from typing import Optional

from crawler import core

# Framework globals and DOM attributes that only appear on client-rendered pages
FRAMEWORK_MARKERS = (
    "__next_data__",
    'id="__next"',
    "__nuxt__",
    'id="__nuxt"',
    "data-reactroot",
    "data-react-helmet",
    "ng-version",
    "<app-root",
    "data-v-app",
    "window.__initial_state__",
    "data-sveltekit",
    "___gatsby",
)


def has_framework_markers(html: str) -> bool:
    if not html:
        return False
    h = html.lower()
    return any(marker in h for marker in FRAMEWORK_MARKERS)


def render_reason(html: str, text: str, min_content_length: int = None) -> Optional[str]:
    """
    Why the page should be re-fetched in a browser, or None when the static HTML is enough.
    `text` is the visible body text already pulled from the same HTML.
    """
    if min_content_length is None:
        min_content_length = core.MIN_CONTENT_LENGTH
    if has_framework_markers(html):
        return "framework markers"
    if len(text) < min_content_length:
        return f"{len(text)} chars of body text"
    return None
