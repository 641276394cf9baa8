"""
Playwright glue: browser and context lifetimes, navigation, measurement and capture.

Contexts and element handles are only ever acquired through the async context
managers below so they are released on success and failure alike.
"""

import io
import sys
from contextlib import asynccontextmanager
from typing import Optional

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .errors import OutOfBounds, RendererFailure, first_line
from .geometry import DEFAULT_BOUNDS_SLACK, LayoutClock, Measurement
from .models import BoundingBox, CaptureSettings, CropRect, Extent

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-dev-shm-usage',
]

RECT_JS = """
el => {
  const r = el.getBoundingClientRect();
  return {x: r.x + window.scrollX, y: r.y + window.scrollY, width: r.width, height: r.height};
}
"""

EXTENT_JS = """
() => {
  const de = document.documentElement;
  const body = document.body || de;
  return {
    width: Math.max(de.scrollWidth, body.scrollWidth),
    height: Math.max(de.scrollHeight, body.scrollHeight),
  };
}
"""

# Inner HTML of the body, minus elements that execute or never render
BODY_CONTENT_JS = """
el => {
  const body = (el.ownerDocument || document).body || el;
  const copy = body.cloneNode(true);
  copy.querySelectorAll("script, noscript, template, style, link").forEach(n => n.remove());
  return copy.innerHTML;
}
"""

STRIP_LINKS_JS = """
(el, keep) => {
  const links = el.tagName === 'A' ? [] : [...el.querySelectorAll('a')].filter(a => a !== keep);
  for (const a of links) {
    const span = document.createElement('span');
    span.textContent = a.textContent;
    a.replaceWith(span);
  }
  return links.length;
}
"""


@asynccontextmanager
async def launch_browser():
    """Start Playwright and a headless Chromium for the whole run."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(args=BROWSER_ARGS)
        try:
            yield browser
        finally:
            await browser.close()


@asynccontextmanager
async def browsing_context(browser, settings: CaptureSettings):
    """
    Fresh, isolated browsing context with the base viewport and device scale factor.

    Yields the context's single page; the context is closed on exit.
    """
    context = await browser.new_context(
        viewport={'width': settings.viewport_width, 'height': settings.viewport_height},
        device_scale_factor=settings.device_scale_factor or 1,
    )
    try:
        page = await context.new_page()
        yield page
    finally:
        await context.close()


@asynccontextmanager
async def element_scope(handle):
    """Dispose an ElementHandle when the scope exits."""
    try:
        yield handle
    finally:
        if handle is not None:
            await handle.dispose()


async def load_page(page, url: str, settings: CaptureSettings):
    """
    Navigate and wait for the page to settle.

    Raises:
        RendererFailure: navigation failed or timed out
    """
    print("    > Loading page...")
    try:
        await page.goto(url, wait_until="networkidle", timeout=settings.navigation_timeout_ms)
    except PlaywrightTimeoutError as e:
        raise RendererFailure("navigation_timeout", url=url, detail=first_line(e)) from e
    except PlaywrightError as e:
        raise RendererFailure("navigation_failed", url=url, detail=first_line(e)) from e

    # Late requests (analytics, lazy widgets) are allowed to run past the settle wait
    try:
        await page.wait_for_load_state("networkidle", timeout=settings.settle_timeout_ms)
    except PlaywrightTimeoutError:
        print("    > Network did not settle, continuing", file=sys.stderr)
    print("    > Page loading complete")


async def measure(page, handle, clock: LayoutClock) -> Measurement:
    """
    Measure an element in document coordinates and stamp it with the current layout epoch.

    Falls back to a direct ``getBoundingClientRect()`` query when Playwright
    reports no box (zero-size or display:none edge cases).
    """
    box = await handle.bounding_box()
    if box is None:
        box = await handle.evaluate(RECT_JS)
    else:
        scroll = await page.evaluate("() => ({x: window.scrollX, y: window.scrollY})")
        box = {
            'x': box['x'] + scroll['x'],
            'y': box['y'] + scroll['y'],
            'width': box['width'],
            'height': box['height'],
        }
    return clock.stamp(BoundingBox.from_dict(box))


async def document_extent(page) -> Extent:
    extent = await page.evaluate(EXTENT_JS)
    return Extent(float(extent['width']), float(extent['height']))


async def resize_viewport(page, width: int, height: int, clock: LayoutClock):
    """Resize the viewport. Every earlier measurement on this page becomes stale."""
    await page.set_viewport_size({'width': int(width), 'height': int(height)})
    clock.advance()


async def strip_links_in_page(handle, clock: LayoutClock, keep=None) -> int:
    """
    Replace anchors inside an element with plain spans holding their text.

    ``keep`` is an anchor handle left in place (a trailing marker still needed
    for measurement).
    """
    count = await handle.evaluate(STRIP_LINKS_JS, keep)
    if count:
        clock.advance()
    return count


async def capture_clip(page, rect: CropRect) -> bytes:
    """PNG of a CSS-pixel rectangle of the page, rendered at the context's scale factor."""
    return await page.screenshot(type="png", clip=rect.as_clip(), full_page=True)


async def capture_raster(page, rect: CropRect, slack: int = DEFAULT_BOUNDS_SLACK) -> bytes:
    """PNG cropped out of a full-page raster. ``rect`` must be in device pixels."""
    raw = await page.screenshot(type="png", full_page=True)
    return crop_png(raw, rect, slack)


def crop_png(raw: bytes, rect: CropRect, slack: int = DEFAULT_BOUNDS_SLACK) -> bytes:
    """
    Crop a PNG buffer to ``rect`` (device pixels).

    Raises:
        OutOfBounds: the rectangle reaches past the raster by more than ``slack``
    """
    with Image.open(io.BytesIO(raw)) as img_full:
        full_width, full_height = img_full.size
        if rect.right > full_width + slack or rect.bottom > full_height + slack:
            raise OutOfBounds(
                "out_of_bounds",
                detail=f"crop {rect.as_box()} exceeds raster {full_width}x{full_height}",
            )
        box = (rect.x, rect.y, min(rect.right, full_width), min(rect.bottom, full_height))
        cropped = img_full.crop(box)
        buffer = io.BytesIO()
        cropped.save(buffer, format="PNG")
    return buffer.getvalue()


def describe_rect(rect: Optional[CropRect]) -> str:
    if rect is None:
        return "none"
    return f"{rect.width}x{rect.height}{'dpx' if rect.unit == 'device' else 'px'} at ({rect.x}, {rect.y})"
