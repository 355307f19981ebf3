from rendering.models import RenderedPage, RenderStage
from rendering.engine import (
    BrowserSession,
    RenderFetcher,
    RenderError,
    RenderTimeoutError,
    classify_render_error,
)
