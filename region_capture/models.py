"""
Data models shared by the locator, synthesizer and crop calculator.

All geometry is expressed in CSS pixels in document coordinates unless a
CropRect is explicitly labelled as device pixels.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class BoundingBox:
    """Rectangle in CSS pixels as reported by the browser layout."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "BoundingBox":
        """Build a box from a Playwright style ``{x, y, width, height}`` dict."""
        return cls(
            x=float(data['x']),
            y=float(data['y']),
            width=float(data['width']),
            height=float(data['height']),
        )

    @classmethod
    def from_edges(cls, left: float, top: float, right: float, bottom: float) -> "BoundingBox":
        return cls(x=left, y=top, width=right - left, height=bottom - top)


@dataclass(frozen=True)
class CropRect:
    """Final integer rectangle handed to an image-capture call."""

    x: int
    y: int
    width: int
    height: int
    unit: str = "css"

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def as_clip(self) -> Dict[str, int]:
        """Playwright ``clip`` argument."""
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}

    def as_box(self) -> Tuple[int, int, int, int]:
        """PIL ``crop`` argument: (left, top, right, bottom)."""
        return (self.x, self.y, self.right, self.bottom)


@dataclass(frozen=True)
class Extent:
    """Scrollable size of a rendered document."""

    width: float
    height: float


@dataclass(frozen=True)
class Padding:
    left: int = 0
    top: int = 0
    right: int = 0
    bottom: int = 0

    @classmethod
    def uniform(cls, amount: int) -> "Padding":
        amount = max(0, int(amount))
        return cls(left=amount, top=amount, right=amount, bottom=amount)


@dataclass(frozen=True)
class Theme:
    """Colours used by the synthesized capture document."""

    background: str
    surface: str
    text: str
    muted: str
    header: str
    dark: bool = True

    @classmethod
    def dark_default(cls) -> "Theme":
        return cls(
            background="#0b0f14",
            surface="#121821",
            text="#ffffff",
            muted="#3a4759",
            header="#1a2330",
            dark=True,
        )

    @classmethod
    def light_default(cls) -> "Theme":
        return cls(
            background="#ffffff",
            surface="#ffffff",
            text="#111827",
            muted="#d0d7de",
            header="#f3f4f6",
            dark=False,
        )


# Capture modes and how they are labelled in filenames and captions
MODE_TABLE = "table"
MODE_CENTER = "center"
MODE_HEADING = "heading"
CAPTURE_MODES = (MODE_TABLE, MODE_CENTER, MODE_HEADING)

MODE_LABELS = {
    MODE_TABLE: "table only",
    MODE_CENTER: "main content",
    MODE_HEADING: "section",
}

CROP_CLIP = "clip"
CROP_RASTER = "raster"


@dataclass
class SelectorConfig:
    """CSS selector lists used by the region locator."""

    table_selectors: List[str] = field(default_factory=lambda: [
        "main table", "#content table", ".content table", ".container table",
        "article table", "section table", "body table",
    ])
    content_wrappers: List[str] = field(default_factory=lambda: [
        "main", "[role='main']", "article", "#content", ".content",
        "#main", ".main", ".container",
    ])
    heading_wrappers: List[str] = field(default_factory=lambda: [
        "section", "article", ".card", ".panel", ".widget", ".module",
        ".box", "[class*='content']",
    ])
    marker_selectors: List[str] = field(default_factory=lambda: [
        "a", "button", "h1", "h2", "h3", "h4", "h5", "h6",
    ])

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SelectorConfig":
        """Build selector lists from a parsed YAML mapping, keeping defaults for missing keys."""
        selectors = cls()
        for key, value in (data or {}).items():
            if hasattr(selectors, key) and value:
                setattr(selectors, key, [str(item) for item in value])
        return selectors


@dataclass
class CaptureSettings:
    """Everything one capture run needs, already validated."""

    viewport_width: int = 1366
    viewport_height: int = 900
    device_scale_factor: float = 2.0
    padding: Padding = field(default_factory=lambda: Padding.uniform(96))
    max_width: int = 3600
    max_height: int = 10000
    navigation_timeout_ms: int = 90000
    settle_timeout_ms: int = 5000
    synthesis_timeout_ms: int = 15000
    theme: Theme = field(default_factory=Theme.dark_default)
    mode: str = MODE_TABLE
    synthesize: Optional[bool] = None
    crop_strategy: str = CROP_CLIP
    strip_links: bool = True
    heading_pattern: Optional[str] = None
    marker_pattern: Optional[str] = None
    center_min_size: Tuple[int, int] = (200, 200)
    heading_min_size: Tuple[int, int] = (300, 150)
    bounds_slack: int = 2
    selectors: SelectorConfig = field(default_factory=SelectorConfig)

    @property
    def should_synthesize(self) -> bool:
        """Table captures are re-rendered by default, other modes are clipped from the page."""
        if self.synthesize is None:
            return self.mode == MODE_TABLE
        return self.synthesize


@dataclass(frozen=True)
class CaptureResult:
    """A finished PNG ready for delivery."""

    png: bytes
    filename: str
    url: str
    mode: str
    date_tag: str
    title: str
    caption: str


@dataclass
class Found:
    """Successful locator outcome: the region node plus optional anchor nodes."""

    node: object
    anchor: Optional[object] = None
    marker: Optional[object] = None


@dataclass
class NotFound:
    reason: str


LocatorOutcome = Union[Found, NotFound]

NO_TABLE_FOUND = "no_table_found"
HEADING_NOT_FOUND = "heading_not_found"
CONTAINER_TOO_SMALL = "container_too_small"
