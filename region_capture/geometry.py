"""
Crop rectangle arithmetic.

Turns CSS-pixel layout measurements into the integer rectangle passed to an
image-capture call:

1. expand the measured box by padding on each side
2. clamp the top-left corner to the document origin (and the far edges to the
   document extent when it is known)
3. floor x/y, ceil width/height, never below 1px
4. optionally scale to device pixels for cropping a full-page raster

Measurements are stamped with a layout epoch. Resizing the viewport or mutating
content advances the epoch, and the calculator refuses to build a rectangle
from a measurement taken before that.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import OutOfBounds, RegionTooSmall
from .models import BoundingBox, CropRect, Extent, Padding

DEFAULT_BOUNDS_SLACK = 2


def expand(box: BoundingBox, padding: Padding) -> BoundingBox:
    """Grow a box by padding on each side."""
    return BoundingBox(
        x=box.x - padding.left,
        y=box.y - padding.top,
        width=box.width + padding.left + padding.right,
        height=box.height + padding.top + padding.bottom,
    )


def clamp(box: BoundingBox, extent: Optional[Extent] = None) -> CropRect:
    """
    Clamp a box to the document and round it to whole CSS pixels.

    The top-left corner never goes above/left of the origin; moving it keeps the
    right and bottom edges where they were. With an extent the far edges are
    also pulled inside the document. Applying this to its own output returns
    the same rectangle.
    """
    left = max(0.0, box.x)
    top = max(0.0, box.y)
    right = box.right
    bottom = box.bottom
    if extent is not None:
        right = min(right, extent.width)
        bottom = min(bottom, extent.height)

    return CropRect(
        x=int(math.floor(left)),
        y=int(math.floor(top)),
        width=max(1, int(math.ceil(right - left))),
        height=max(1, int(math.ceil(bottom - top))),
    )


def check_region(box: BoundingBox, extent: Optional[Extent] = None,
                 slack: int = DEFAULT_BOUNDS_SLACK) -> None:
    """
    Reject boxes that cannot produce a meaningful capture.

    Raises:
        RegionTooSmall: width or height rounds to less than one pixel
        OutOfBounds: the box reaches past the document extent by more than ``slack``
    """
    if round(box.width) < 1 or round(box.height) < 1:
        raise RegionTooSmall(box.width, box.height)

    if extent is None:
        return
    if box.right > extent.width + slack or box.bottom > extent.height + slack:
        raise OutOfBounds(
            "out_of_bounds",
            detail=(
                f"region ends at ({box.right:.1f}, {box.bottom:.1f}) but document is "
                f"{extent.width:.0f}x{extent.height:.0f}"
            ),
        )


def to_crop_rect(box: BoundingBox, padding: Padding, extent: Optional[Extent] = None,
                 slack: int = DEFAULT_BOUNDS_SLACK) -> CropRect:
    """Validate, pad, clamp and round a measured box."""
    check_region(box, extent, slack)
    return clamp(expand(box, padding), extent)


def combine_anchored(column: BoundingBox, heading: BoundingBox,
                     marker: Optional[BoundingBox] = None,
                     page_bottom: Optional[float] = None) -> BoundingBox:
    """
    Build the region for a heading-anchored capture.

    Horizontal bounds come from the content column, the top from the heading.
    The bottom is the closest of the trailing marker's top, the column bottom
    and the page bottom.
    """
    candidates = [column.bottom]
    if marker is not None:
        candidates.append(marker.y)
    if page_bottom is not None:
        candidates.append(page_bottom)
    bottom = min(candidates)

    # A marker or page edge above the heading would produce an empty region
    if bottom <= heading.y:
        bottom = max(heading.bottom, column.bottom)

    return BoundingBox.from_edges(column.x, heading.y, column.right, bottom)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_device(rect: CropRect, device_scale_factor: float) -> CropRect:
    """
    Scale a CSS-pixel rectangle to device pixels.

    Only valid for a raster captured at the same device scale factor.
    """
    if rect.unit == "device":
        return rect
    return CropRect(
        x=_round_half_up(rect.x * device_scale_factor),
        y=_round_half_up(rect.y * device_scale_factor),
        width=max(1, _round_half_up(rect.width * device_scale_factor)),
        height=max(1, _round_half_up(rect.height * device_scale_factor)),
        unit="device",
    )


def fit_viewport(rect: CropRect, base: Tuple[int, int], maximum: Tuple[int, int]) -> Tuple[int, int]:
    """
    Viewport size large enough to lay out the whole rectangle.

    Never smaller than the base viewport and never larger than the configured
    maximum.
    """
    need_width = rect.right + 2
    need_height = rect.bottom + 2
    width = min(max(need_width, base[0]), maximum[0])
    height = min(max(need_height, base[1]), maximum[1])
    return int(width), int(height)


@dataclass(frozen=True)
class Measurement:
    """A bounding box together with the layout epoch it was measured in."""

    box: BoundingBox
    epoch: int


class LayoutClock:
    """Counts layout-affecting operations for one rendered document."""

    def __init__(self):
        self.epoch = 0

    def advance(self) -> int:
        self.epoch += 1
        return self.epoch

    def stamp(self, box: BoundingBox) -> Measurement:
        return Measurement(box=box, epoch=self.epoch)

    def is_current(self, measurement: Measurement) -> bool:
        return measurement.epoch == self.epoch


class CropCalculator:
    """Builds crop rectangles from measurements that are still valid."""

    def __init__(self, padding: Padding, clock: LayoutClock, slack: int = DEFAULT_BOUNDS_SLACK):
        self.padding = padding
        self.clock = clock
        self.slack = slack

    def _require_current(self, *measurements: Optional[Measurement]) -> None:
        for measurement in measurements:
            if measurement is not None and not self.clock.is_current(measurement):
                raise OutOfBounds(
                    "stale_measurement",
                    detail=f"measured in layout epoch {measurement.epoch}, layout is now at {self.clock.epoch}",
                )

    def rect(self, measurement: Measurement, extent: Optional[Extent] = None) -> CropRect:
        self._require_current(measurement)
        return to_crop_rect(measurement.box, self.padding, extent, self.slack)

    def anchored_rect(self, column: Measurement, heading: Measurement,
                      marker: Optional[Measurement] = None,
                      extent: Optional[Extent] = None) -> CropRect:
        self._require_current(column, heading, marker)
        box = combine_anchored(
            column.box,
            heading.box,
            marker.box if marker is not None else None,
            extent.height if extent is not None else None,
        )
        return to_crop_rect(box, self.padding, extent, self.slack)
