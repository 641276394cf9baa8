"""
Layout synthesizer.

Re-renders extracted markup inside a minimal standalone document with a fixed
stylesheet, so the region can be captured without the source page's styles and
surrounding chrome. The viewport is grown to fit the content, and the element is
measured again afterwards because the resize can move it (tables are centred and
may re-wrap).
"""

import sys
from contextlib import asynccontextmanager
from typing import Tuple

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .errors import SynthesisTimeout
from .geometry import CropCalculator, LayoutClock, Measurement, fit_viewport, to_device
from .models import CROP_RASTER, CaptureSettings, CropRect, Theme
from .renderer import (
    browsing_context,
    capture_clip,
    capture_raster,
    describe_rect,
    document_extent,
    element_scope,
    measure,
    resize_viewport,
)

ROOT_CLASS = "capture-root"
TARGET_SELECTOR = f".{ROOT_CLASS} > *"
BODY_CLASS = "capture-body"


def strip_links(markup: str) -> str:
    """
    Replace every anchor with a span holding its visible text.

    Args:
        markup: HTML fragment

    Returns:
        The fragment without hyperlinks
    """
    if not markup or not markup.strip():
        return markup

    soup = BeautifulSoup(markup, 'html.parser')
    links = soup.find_all('a')
    for link in links:
        span = soup.new_tag('span')
        span.string = link.get_text()
        link.replace_with(span)

    if links:
        print(f"    > Stripped {len(links)} link(s) from extracted markup")
    return str(soup)


def wrap_body_content(inner_html: str) -> str:
    """Single block holding a whole page body, so the capture root has one child to measure."""
    return f'<div class="{BODY_CLASS}">{inner_html}</div>'


def build_stylesheet(theme: Theme) -> str:
    return f"""
  html, body {{ margin: 0; padding: 0; background: {theme.background}; }}
  body {{
    font-family: system-ui, -apple-system, "Segoe UI", Roboto, Ubuntu, "Helvetica Neue", Arial, sans-serif;
    font-variant-numeric: tabular-nums;
  }}
  .{ROOT_CLASS} {{ display: flow-root; }}
  .{ROOT_CLASS} > * {{ margin-left: auto; margin-right: auto; }}
  table {{
    border-collapse: collapse;
    background: {theme.surface};
    color: {theme.text};
    font-size: 22px;
    line-height: 1.5;
    margin: 0 auto;
  }}
  th, td {{
    border: 1px solid {theme.muted};
    padding: 10px 16px;
    text-align: left;
    vertical-align: middle;
  }}
  thead th {{
    position: sticky;
    top: 0;
    background: {theme.header};
    color: {theme.text};
    font-weight: 700;
    font-size: 24px;
  }}
  * {{ color: {theme.text} !important; text-decoration: none !important; }}
"""


def build_document(markup: str, theme: Theme) -> str:
    """
    Standalone HTML document embedding ``markup`` verbatim.

    Padding is applied to the crop rectangle, not the body, so it stays visible
    whatever size the viewport ends up with.
    """
    return f"""<!doctype html>
<html>
<head>
<meta charset="utf-8">
<style>{build_stylesheet(theme)}</style>
</head>
<body>
<div class="{ROOT_CLASS}">{markup}</div>
</body>
</html>"""


@asynccontextmanager
async def synthesized_page(browser, markup: str, settings: CaptureSettings):
    """
    Render ``markup`` in a fresh browsing context and yield ``(page, element)``.

    Raises:
        SynthesisTimeout: the element did not become visible within the synthesis timeout
    """
    html = build_document(markup, settings.theme)
    async with browsing_context(browser, settings) as page:
        await page.set_content(html, wait_until="load")
        try:
            element = await page.wait_for_selector(
                TARGET_SELECTOR, state="visible", timeout=settings.synthesis_timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise SynthesisTimeout(settings.synthesis_timeout_ms) from e
        if element is None:
            raise SynthesisTimeout(settings.synthesis_timeout_ms)

        async with element_scope(element):
            yield page, element


async def fit_to_content(page, element, settings: CaptureSettings, calculator: CropCalculator) -> Measurement:
    """
    Grow the viewport so the padded element is fully laid out, then measure again.

    Returns:
        The post-resize measurement; the pre-resize one is stale by then
    """
    clock = calculator.clock
    first = await measure(page, element, clock)
    rect = calculator.rect(first)
    width, height = fit_viewport(
        rect,
        (settings.viewport_width, settings.viewport_height),
        (settings.max_width, settings.max_height),
    )
    if rect.right + 2 > settings.max_width or rect.bottom + 2 > settings.max_height:
        print(f"    > Warning: region {describe_rect(rect)} is larger than the "
              f"{settings.max_width}x{settings.max_height} viewport cap", file=sys.stderr)

    print(f"    > Resizing viewport to {width}x{height}")
    await resize_viewport(page, width, height, clock)

    second = await measure(page, element, clock)
    if second.box != first.box:
        print("    > Layout moved after resize, using the new measurement")
    return second


async def render_markup(browser, markup: str, settings: CaptureSettings) -> Tuple[bytes, CropRect]:
    """
    Synthesize, fit, measure and capture extracted markup.

    Returns:
        Tuple of (png_bytes, crop_rect_used)
    """
    if settings.strip_links:
        markup = strip_links(markup)

    clock = LayoutClock()
    calculator = CropCalculator(settings.padding, clock, settings.bounds_slack)

    async with synthesized_page(browser, markup, settings) as (page, element):
        measurement = await fit_to_content(page, element, settings, calculator)
        extent = await document_extent(page)
        rect = calculator.rect(measurement, extent)
        print(f"    > Crop rectangle: {describe_rect(rect)}")

        if settings.crop_strategy == CROP_RASTER:
            device_rect = to_device(rect, settings.device_scale_factor or 1)
            png = await capture_raster(page, device_rect, settings.bounds_slack)
        else:
            png = await capture_clip(page, rect)
    return png, rect
