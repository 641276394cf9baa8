import argparse
import asyncio
import sys
from contextlib import AsyncExitStack
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError

from .delivery import LocalDelivery, SlackDelivery
from .errors import CaptureError, LocatorFailure, OutOfBounds, RendererFailure, first_line
from .geometry import CropCalculator, LayoutClock, to_device
from .locator import ROOT_TAGS, locate
from .models import (
    CAPTURE_MODES,
    CROP_CLIP,
    CROP_RASTER,
    MODE_HEADING,
    CaptureResult,
    CaptureSettings,
    CropRect,
    Found,
    NotFound,
    Padding,
)
from .naming import capture_caption, capture_filename, capture_title, date_stamp, parse_urls
from .renderer import (
    BODY_CONTENT_JS,
    browsing_context,
    capture_clip,
    capture_raster,
    describe_rect,
    document_extent,
    element_scope,
    launch_browser,
    load_page,
    measure,
    strip_links_in_page,
)
from .snapshot import live_snapshot
from .synthesizer import render_markup, wrap_body_content


class CaptureProcessor:
    """
    Capture one region per URL and hand the PNG to the delivery channels.

    - Uses Playwright to load the page and record a DOM snapshot.
    - Locates the region with the configured policy.
    - Either re-renders the region's markup in a clean document or clips it
      straight out of the page.
    """

    def __init__(self, settings: CaptureSettings, deliveries: Sequence = (),
                 title_prefix: str = "Daily screenshot"):
        """
        Args:
            settings: Validated capture settings
            deliveries: Objects with a ``deliver(CaptureResult)`` method
            title_prefix: Prefix of the upload title
        """
        self.settings = settings
        self.deliveries = list(deliveries)
        self.title_prefix = title_prefix

    async def capture_url(self, browser, url: str) -> CaptureResult:
        """
        Locate, render and capture the region for one URL.

        Raises:
            CaptureError: any failure; the URL is attached
        """
        settings = self.settings
        synthesize = settings.should_synthesize and settings.mode != MODE_HEADING
        markup = None

        async with browsing_context(browser, settings) as page:
            await load_page(page, url, settings)

            print(f"  > Phase 1: Locating region ({settings.mode} policy)...")
            async with live_snapshot(page, settings.selectors) as snapshot:
                outcome = locate(snapshot, settings)
                if isinstance(outcome, NotFound):
                    raise LocatorFailure(outcome.reason, url=url)
                print(f"    > Region: {outcome.node!r}")

                if synthesize:
                    markup = await self._extract_markup(snapshot, outcome)
                else:
                    print("  > Phase 2: Capturing region from the page...")
                    png, rect = await self._capture_in_page(page, snapshot, outcome)

        if synthesize:
            print("  > Phase 2: Rendering region in a clean document...")
            png, rect = await render_markup(browser, markup, settings)

        print(f"    > Captured {describe_rect(rect)} ({len(png):,} bytes)")
        return self._build_result(url, png)

    async def _extract_markup(self, snapshot, outcome: Found) -> str:
        handle = await snapshot.resolve(outcome.node)
        async with element_scope(handle):
            if outcome.node.tag in ROOT_TAGS:
                # The parser drops an injected <body>; keep its content under one element
                markup = wrap_body_content(await handle.evaluate(BODY_CONTENT_JS))
            else:
                markup = await handle.evaluate("el => el.outerHTML")
        print(f"    > Extracted markup: {len(markup):,} characters")
        return markup

    async def _capture_in_page(self, page, snapshot, outcome: Found) -> Tuple[bytes, CropRect]:
        settings = self.settings
        clock = LayoutClock()
        calculator = CropCalculator(settings.padding, clock, settings.bounds_slack)

        async with AsyncExitStack() as stack:
            async def acquire(node):
                if node is None:
                    return None
                return await stack.enter_async_context(element_scope(await snapshot.resolve(node)))

            region = await acquire(outcome.node)
            anchor = await acquire(outcome.anchor)
            marker = await acquire(outcome.marker)

            if settings.strip_links:
                await strip_links_in_page(region, clock, keep=marker)

            rect = await self._measure_rect(page, calculator, region, anchor, marker)
            print(f"    > Crop rectangle: {describe_rect(rect)}")

            if settings.crop_strategy == CROP_RASTER:
                device_rect = to_device(rect, settings.device_scale_factor or 1)
                png = await capture_raster(page, device_rect, settings.bounds_slack)
            else:
                png = await capture_clip(page, rect)
        return png, rect

    async def _measure_rect(self, page, calculator: CropCalculator, region, anchor=None, marker=None) -> CropRect:
        """Measure and build the crop rectangle, measuring once more if it falls outside the document."""
        clock = calculator.clock
        for attempt in (1, 2):
            extent = await document_extent(page)
            region_box = await measure(page, region, clock)
            try:
                if anchor is None:
                    return calculator.rect(region_box, extent)
                anchor_box = await measure(page, anchor, clock)
                marker_box = await measure(page, marker, clock) if marker is not None else None
                return calculator.anchored_rect(region_box, anchor_box, marker_box, extent)
            except OutOfBounds as e:
                if attempt == 2:
                    raise
                print(f"    > Warning: {e}, measuring again", file=sys.stderr)

    def _build_result(self, url: str, png: bytes) -> CaptureResult:
        date_tag = date_stamp()
        mode = self.settings.mode
        return CaptureResult(
            png=png,
            filename=capture_filename(url, mode, date_tag),
            url=url,
            mode=mode,
            date_tag=date_tag,
            title=capture_title(self.title_prefix, mode, self.settings.theme),
            caption=capture_caption(url, mode, date_tag),
        )

    async def process_url(self, browser, url: str) -> CaptureResult:
        """Capture and deliver one URL."""
        print(f"\n--- Processing {url} ---")
        try:
            result = await self.capture_url(browser, url)
            print("  > Phase 3: Delivering...")
            for delivery in self.deliveries:
                delivery.deliver(result)
        except CaptureError as e:
            raise e.for_url(url)
        except PlaywrightError as e:
            raise RendererFailure("browser_error", url=url, detail=first_line(e)) from e
        except Exception as e:
            raise RendererFailure(
                "unexpected_error", url=url, detail=f"{e.__class__.__name__}: {first_line(e)}"
            ) from e
        print(f"--- Successfully processed {url} ---")
        return result

    async def run(self, urls: Sequence[str], browser=None) -> List[CaptureError]:
        """
        Process URLs one after another. A failure only aborts its own URL.

        Returns:
            The failures, one per failed URL
        """
        failures: List[CaptureError] = []
        async with AsyncExitStack() as stack:
            if browser is None:
                browser = await stack.enter_async_context(launch_browser())
            for url in urls:
                try:
                    await self.process_url(browser, url)
                except CaptureError as e:
                    failures.append(e)
                    print(f"--- FAILED to process {url}: {e} ---", file=sys.stderr)

        print(f"\nProcessed {len(urls)} URL(s): {len(urls) - len(failures)} succeeded, {len(failures)} failed")
        return failures


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Capture one region of each page and post it to Slack')
    parser.add_argument('urls', nargs='*', help='URLs to capture (defaults to TARGET_URLS)')
    parser.add_argument('--mode', choices=CAPTURE_MODES, help='Region policy (defaults to CAPTURE_MODE)')
    parser.add_argument('--heading', help='Heading text or regex for heading mode')
    parser.add_argument('--marker', help='Trailing marker text or regex for heading mode')
    synth = parser.add_mutually_exclusive_group()
    synth.add_argument('--synthesize', dest='synthesize', action='store_true', default=None,
                       help='Re-render the region in a clean document')
    synth.add_argument('--no-synthesize', dest='synthesize', action='store_false',
                       help='Clip the region straight out of the page')
    parser.add_argument('--crop-strategy', choices=(CROP_CLIP, CROP_RASTER),
                        help='Clip capture or crop from a full-page raster')
    parser.add_argument('--padding', type=int, help='Padding around the region in CSS pixels')
    parser.add_argument('--output-dir', type=Path, help='Also save PNGs to this directory')
    parser.add_argument('--dry-run', action='store_true', help='Do not upload to Slack')
    return parser


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the script.

    Returns:
        Process exit status: 0 when every URL succeeded
    """
    args = build_parser().parse_args(argv)

    try:
        from config import config
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    urls = args.urls or parse_urls(config.TARGET_URLS)
    if not urls:
        print("No URLs given. Pass them as arguments or set TARGET_URLS.", file=sys.stderr)
        return 1

    overrides = {
        'mode': args.mode,
        'heading_pattern': args.heading,
        'marker_pattern': args.marker,
        'synthesize': args.synthesize,
        'crop_strategy': args.crop_strategy,
        'padding': Padding.uniform(args.padding) if args.padding is not None else None,
    }
    try:
        settings = config.capture_settings(**overrides)
        if settings.mode == MODE_HEADING and not settings.heading_pattern:
            raise ValueError("Heading mode needs --heading or HEADING_PATTERN")

        deliveries = []
        output_dir = args.output_dir or (Path(config.OUTPUT_DIR) if config.OUTPUT_DIR else None)
        if output_dir:
            deliveries.append(LocalDelivery(output_dir))
        if not args.dry_run:
            config.validate_delivery()
            deliveries.append(SlackDelivery(config.SLACK_BOT_TOKEN, config.CHANNEL_ID, config.ADD_COMMENT))
    except (ValueError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    processor = CaptureProcessor(settings, deliveries, title_prefix=config.TITLE_PREFIX)
    failures = await processor.run(urls)
    return 1 if failures else 0


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
