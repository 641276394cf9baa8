"""
Region locator policies.

Each policy takes recorded DOM nodes and returns a LocatorOutcome. The functions
only rely on the node interface (``bounding_box()``, ``computed_visibility()``,
``parent()``, ``matches(selector)``), so they run the same against a live page
snapshot and against hand-built trees.
"""

import re
import sys
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import (
    CONTAINER_TOO_SMALL,
    HEADING_NOT_FOUND,
    MODE_CENTER,
    MODE_HEADING,
    MODE_TABLE,
    NO_TABLE_FOUND,
    BoundingBox,
    CaptureSettings,
    Found,
    LocatorOutcome,
    NotFound,
)

# Minimum rendered size for a table to count as visible
TABLE_MIN_SIZE = (5, 5)

# Displays that never form a block box of their own; table-* internals resolve to the table
NON_BLOCK_DISPLAYS = frozenset({"inline", "contents", "none"})
ROOT_TAGS = frozenset({"html", "body"})


def is_visible(node, min_size: Tuple[float, float] = (0, 0)) -> bool:
    """Displayed, not hidden, not transparent and strictly larger than ``min_size``."""
    if node.computed_visibility().is_hidden:
        return False
    box = node.bounding_box()
    return box.width > min_size[0] and box.height > min_size[1]


def is_large_enough(box: BoundingBox, min_size: Tuple[float, float]) -> bool:
    return box.width >= min_size[0] and box.height >= min_size[1]


def is_block_level(node) -> bool:
    visibility = node.computed_visibility()
    display = visibility.display
    if visibility.is_hidden or display in NON_BLOCK_DISPLAYS:
        return False
    return not display.startswith("table-")


def is_document_root(node) -> bool:
    return getattr(node, 'tag', '') in ROOT_TAGS or node.parent() is None


def walk_up(node) -> Iterable:
    """Yield ``node`` and its ancestors, stopping before body/html."""
    while node is not None and not is_document_root(node):
        yield node
        node = node.parent()


def compile_pattern(pattern: str) -> "re.Pattern":
    """Case-insensitive regex; a pattern that is not valid regex is matched literally."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(pattern), re.IGNORECASE)


def largest_table(tables: Sequence) -> LocatorOutcome:
    """
    Pick the visible table with the greatest rendered area.

    Args:
        tables: Candidate table nodes in document order

    Returns:
        Found(table), or NotFound(no_table_found) when none are visible
    """
    best = None
    best_area = 0.0
    visible = 0
    for table in tables:
        if not is_visible(table, TABLE_MIN_SIZE):
            continue
        visible += 1
        area = table.bounding_box().area
        # Strict comparison keeps the first table on ties
        if best is None or area > best_area:
            best, best_area = table, area

    if best is None:
        return NotFound(NO_TABLE_FOUND)
    print(f"    > {visible} visible table(s), largest is {best_area:.0f}px²")
    return Found(best)


def centered_block(center, fallbacks: Sequence, body, min_size: Tuple[int, int] = (200, 200)) -> LocatorOutcome:
    """
    Pick the block that holds the centre of the viewport.

    Walks up from the element under the viewport centre to the first block-level
    ancestor of at least ``min_size``. If the walk reaches the document root, the
    first content wrapper is used, and failing that the body.
    """
    for node in walk_up(center):
        if is_block_level(node) and is_large_enough(node.bounding_box(), min_size):
            return Found(node)

    for wrapper in fallbacks:
        if wrapper is not None:
            print("    > No centred block large enough, using first content wrapper")
            return Found(wrapper)

    print("    > No centred block or content wrapper, using document body")
    return Found(body)


def find_heading(headings: Sequence, pattern: str) -> Optional[object]:
    regex = compile_pattern(pattern)
    for heading in headings:
        if regex.search(heading.text or ""):
            return heading
    return None


def heading_container(heading, preferred: Sequence[str], min_size: Tuple[int, int] = (300, 150)):
    """
    Choose the block that contains a heading's section.

    Preference order: the first ancestor matching a preferred wrapper selector
    and large enough, then the first large enough block-level ancestor, then the
    heading itself.
    """
    chain: List = list(walk_up(heading.parent()))

    for node in chain:
        if node.computed_visibility().is_hidden:
            continue
        if any(node.matches(sel) for sel in preferred) and is_large_enough(node.bounding_box(), min_size):
            return node

    for node in chain:
        if is_block_level(node) and is_large_enough(node.bounding_box(), min_size):
            return node

    return heading


def trailing_marker(heading, container, markers: Sequence, pattern: str):
    """
    First marker after the heading, inside the container, whose text matches ``pattern``.

    Markers nested inside the heading itself are ignored.
    """
    regex = compile_pattern(pattern)
    heading_top = heading.bounding_box().y
    for marker in markers:
        if marker is heading or marker.order <= heading.order:
            continue
        if heading.contains(marker):
            continue
        if container is not heading and not container.contains(marker):
            continue
        if not is_visible(marker) or marker.bounding_box().y <= heading_top:
            continue
        if regex.search(marker.text or ""):
            return marker
    return None


def heading_anchored(headings: Sequence, pattern: str, preferred: Sequence[str],
                     markers: Sequence = (), marker_pattern: Optional[str] = None,
                     min_size: Tuple[int, int] = (300, 150)) -> LocatorOutcome:
    """
    Locate the section introduced by the first heading matching ``pattern``.

    Returns:
        Found(container, anchor=heading, marker=trailing marker or None),
        NotFound(heading_not_found) when no heading matches, or
        NotFound(container_too_small) when the heading has no rendered box
    """
    heading = find_heading(headings, pattern)
    if heading is None:
        return NotFound(HEADING_NOT_FOUND)

    box = heading.bounding_box()
    if box.width < 1 or box.height < 1:
        return NotFound(CONTAINER_TOO_SMALL)

    container = heading_container(heading, preferred, min_size)
    marker = trailing_marker(heading, container, markers, marker_pattern or pattern)
    print(f"    > Heading matched: '{heading.text[:80]}'")
    if container is heading:
        print("    > No suitable container, capturing the heading alone", file=sys.stderr)
    if marker is None:
        print("    > No trailing marker, using container bottom")
    return Found(container, anchor=heading, marker=marker)


def locate(snapshot, settings: CaptureSettings) -> LocatorOutcome:
    """Run the policy selected by ``settings.mode`` against a snapshot."""
    selectors = settings.selectors
    if settings.mode == MODE_TABLE:
        return largest_table(snapshot.tables)
    if settings.mode == MODE_CENTER:
        return centered_block(
            snapshot.center,
            snapshot.wrapper_candidates(selectors.content_wrappers),
            snapshot.body,
            settings.center_min_size,
        )
    if settings.mode == MODE_HEADING:
        if not settings.heading_pattern:
            raise ValueError("heading mode requires a heading pattern")
        return heading_anchored(
            snapshot.headings,
            settings.heading_pattern,
            selectors.heading_wrappers,
            snapshot.markers,
            settings.marker_pattern,
            settings.heading_min_size,
        )
    raise ValueError(f"Unknown capture mode: {settings.mode}")
