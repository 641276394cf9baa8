"""
Region Capture Module

Renders a page with Playwright, finds one meaningful region of it and produces a
pixel-accurate PNG of exactly that region, ready to post to Slack.

Key Features:
- Region policies: largest visible table, block at the viewport centre, or the
  section under a heading matching a pattern
- Optional re-rendering of the region's markup in a clean, themed document
- Crop rectangles that follow the layout after viewport resizes
- Configurable CSS selectors for different website layouts

Usage:
    from region_capture import CaptureProcessor

    processor = CaptureProcessor(settings, deliveries)
    failures = await processor.run(urls)
"""

from .errors import (
    CaptureError,
    DeliveryFailure,
    LocatorFailure,
    OutOfBounds,
    RegionTooSmall,
    RendererFailure,
    SynthesisTimeout,
)
from .geometry import CropCalculator, LayoutClock, to_crop_rect
from .locator import centered_block, heading_anchored, largest_table, locate
from .models import BoundingBox, CaptureResult, CaptureSettings, CropRect, Padding, Theme
from .processor import CaptureProcessor

__all__ = [
    'CaptureProcessor',
    'CaptureSettings',
    'CaptureResult',
    'BoundingBox',
    'CropRect',
    'Padding',
    'Theme',
    'CropCalculator',
    'LayoutClock',
    'to_crop_rect',
    'locate',
    'largest_table',
    'centered_block',
    'heading_anchored',
    'CaptureError',
    'LocatorFailure',
    'SynthesisTimeout',
    'RegionTooSmall',
    'OutOfBounds',
    'RendererFailure',
    'DeliveryFailure',
]
