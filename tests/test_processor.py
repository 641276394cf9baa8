"""
Tests for the per-URL pipeline: failure isolation, re-measurement and result naming.
"""

import asyncio
import sys

import pytest
from playwright.async_api import Error as PlaywrightError

from region_capture.errors import LocatorFailure, OutOfBounds, RendererFailure
from region_capture.geometry import CropCalculator, LayoutClock
from region_capture.models import MODE_HEADING, CaptureResult, CaptureSettings, CropRect, Found, Padding
from region_capture.processor import CaptureProcessor, build_parser, main
from region_capture.renderer import BODY_CONTENT_JS
from region_capture.synthesizer import BODY_CLASS

from conftest import FakeBrowser, FakePage, LivePage, RecordedElement


class RecordingDelivery:
    def __init__(self):
        self.results = []

    def deliver(self, result):
        self.results.append(result)


class ScriptedProcessor(CaptureProcessor):
    """Processor whose capture step is scripted per URL."""

    def __init__(self, outcomes, **kwargs):
        super().__init__(CaptureSettings(), **kwargs)
        self.outcomes = outcomes
        self.seen = []

    async def capture_url(self, browser, url):
        self.seen.append(url)
        outcome = self.outcomes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return self._build_result(url, outcome)


def test_failure_aborts_only_its_url():
    delivery = RecordingDelivery()
    processor = ScriptedProcessor({
        "https://a.example/stats": LocatorFailure("no_table_found"),
        "https://b.example/stats": b"png-bytes",
    }, deliveries=[delivery])

    failures = asyncio.run(processor.run(list(processor.outcomes), browser=object()))

    assert processor.seen == ["https://a.example/stats", "https://b.example/stats"]
    assert len(failures) == 1
    assert failures[0].reason == "no_table_found"
    assert failures[0].url == "https://a.example/stats"
    assert [r.url for r in delivery.results] == ["https://b.example/stats"]


def test_playwright_errors_become_renderer_failures():
    processor = ScriptedProcessor({"https://a.example": PlaywrightError("Target closed\ncall log")})

    failures = asyncio.run(processor.run(["https://a.example"], browser=object()))

    assert isinstance(failures[0], RendererFailure)
    assert failures[0].detail == "Target closed"


def test_result_is_named_from_url_and_mode():
    processor = CaptureProcessor(CaptureSettings(), title_prefix="Daily screenshot")

    result = processor._build_result("https://stats.example.com/daily?id=3", b"png")

    assert isinstance(result, CaptureResult)
    assert result.filename == f"stats.example.com_daily_id_3-table-{result.date_tag}.png"
    assert result.title == "Daily screenshot • table only • dark"
    assert "<https://stats.example.com/daily?id=3>" in result.caption


class ShiftingHandle:
    """Reports a stale box first, then a box that fits the document."""

    def __init__(self, boxes):
        self.boxes = list(boxes)

    async def bounding_box(self):
        return self.boxes.pop(0)


def test_out_of_bounds_triggers_one_remeasure():
    page = FakePage({'width': 1000, 'height': 800})
    handle = ShiftingHandle([
        {'x': 0, 'y': 700, 'width': 400, 'height': 300},
        {'x': 0, 'y': 300, 'width': 400, 'height': 300},
    ])
    processor = CaptureProcessor(CaptureSettings(padding=Padding.uniform(0)))
    calculator = CropCalculator(Padding.uniform(0), LayoutClock())

    rect = asyncio.run(processor._measure_rect(page, calculator, handle))

    assert rect == CropRect(0, 300, 400, 300)


def test_persistent_out_of_bounds_is_raised():
    page = FakePage({'width': 1000, 'height': 800})
    box = {'x': 0, 'y': 700, 'width': 400, 'height': 300}
    handle = ShiftingHandle([box, box])
    processor = CaptureProcessor(CaptureSettings())
    calculator = CropCalculator(Padding.uniform(0), LayoutClock())

    with pytest.raises(OutOfBounds):
        asyncio.run(processor._measure_rect(page, calculator, handle))


def test_parser_reads_mode_and_heading():
    args = build_parser().parse_args([
        "https://example.com", "--mode", MODE_HEADING, "--heading", "Stat of the Day", "--no-synthesize",
    ])

    assert args.urls == ["https://example.com"]
    assert args.mode == MODE_HEADING
    assert args.heading == "Stat of the Day"
    assert args.synthesize is False


class FailingDelivery:
    def __init__(self, error, failing_url):
        self.error = error
        self.failing_url = failing_url
        self.delivered = []

    def deliver(self, result):
        if result.url == self.failing_url:
            raise self.error
        self.delivered.append(result.url)


def test_unexpected_capture_error_aborts_only_its_url():
    processor = ScriptedProcessor({
        "https://a.example": RuntimeError("recorded node is no longer an element"),
        "https://b.example": b"png-bytes",
    })

    failures = asyncio.run(processor.run(list(processor.outcomes), browser=object()))

    assert processor.seen == ["https://a.example", "https://b.example"]
    assert isinstance(failures[0], RendererFailure)
    assert failures[0].reason == "unexpected_error"
    assert failures[0].url == "https://a.example"
    assert failures[0].detail.startswith("RuntimeError")


def test_delivery_os_error_aborts_only_its_url():
    delivery = FailingDelivery(OSError("No space left on device"), "https://a.example")
    processor = ScriptedProcessor({
        "https://a.example": b"png-a",
        "https://b.example": b"png-b",
    }, deliveries=[delivery])

    failures = asyncio.run(processor.run(list(processor.outcomes), browser=object()))

    assert processor.seen == ["https://a.example", "https://b.example"]
    assert [f.url for f in failures] == ["https://a.example"]
    assert delivery.delivered == ["https://b.example"]


def _stat_page(tree):
    html = tree.add("html", (0, 0, 1366, 2000))
    body = tree.add("body", (0, 0, 1366, 2000), parent=html)
    section = tree.add("section", (183, 400, 1000, 900), parent=body, matches=["section"])
    heading = tree.add("h2", (203, 420, 600, 40), parent=section, text="Stat of the Day")
    table = tree.add("table", (203, 480, 960, 600), parent=section, display="table")
    marker = tree.add("a", (203, 1120, 220, 24), parent=section, display="inline", text="Stat of the Day List")
    return body, section, heading, table, marker


def _live_browser(tree, payload, boxes=None):
    """Browser whose pages all share one set of element handles built from the tree."""
    boxes = boxes or {}
    elements = {
        node['id']: RecordedElement(boxes.get(node['id'], tuple(node['box'].values())))
        for node in tree.nodes
    }
    pages = []

    def factory(viewport):
        page = LivePage(viewport, payload, elements)
        pages.append(page)
        return page

    return FakeBrowser(factory), pages, elements


def test_heading_capture_clips_from_heading_to_marker(tree):
    body, section, heading, table, marker = _stat_page(tree)
    payload = tree.payload(tables=[table], headings=[heading], markers=[marker], body=body)
    browser, pages, elements = _live_browser(tree, payload)
    settings = CaptureSettings(mode=MODE_HEADING, heading_pattern="Stat of the Day",
                               padding=Padding.uniform(16))

    result = asyncio.run(CaptureProcessor(settings).capture_url(browser, "https://stats.example"))

    page = pages[0]
    assert result.png.startswith(b"\x89PNG")
    assert page.screenshots[0]['clip'] == {'x': 167, 'y': 404, 'width': 1032, 'height': 732}
    assert page.screenshots[0]['full_page'] is True
    # Links inside the section are stripped, except the marker still to be measured
    assert elements[section].kept_links == [elements[marker]]
    assert elements[section].disposed and elements[heading].disposed and elements[marker].disposed
    assert page.registry.disposed
    assert browser.contexts[0].closed


def test_no_visible_table_captures_nothing(tree):
    html = tree.add("html", (0, 0, 1366, 2000))
    body = tree.add("body", (0, 0, 1366, 2000), parent=html)
    hidden = tree.add("table", (0, 0, 600, 400), parent=body, display="none")
    browser, pages, _ = _live_browser(tree, tree.payload(tables=[hidden], body=body))

    with pytest.raises(LocatorFailure) as excinfo:
        asyncio.run(CaptureProcessor(CaptureSettings()).capture_url(browser, "https://stats.example"))

    assert excinfo.value.reason == "no_table_found"
    assert pages[0].screenshots == []
    assert pages[0].registry.disposed
    assert len(browser.contexts) == 1
    assert browser.contexts[0].closed


def test_failed_capture_releases_handles_and_context(tree):
    html = tree.add("html", (0, 0, 1366, 2000))
    body = tree.add("body", (0, 0, 1366, 2000), parent=html)
    card = tree.add("div", (383, 250, 600, 400), parent=body)
    span = tree.add("span", (600, 440, 120, 20), parent=card, display="inline")
    # The live card has moved past the end of the document since the snapshot
    browser, pages, elements = _live_browser(
        tree, tree.payload(center=span, body=body), boxes={card: (383, 1900, 600, 400)},
    )
    settings = CaptureSettings(mode="center", synthesize=False)

    with pytest.raises(OutOfBounds):
        asyncio.run(CaptureProcessor(settings).capture_url(browser, "https://stats.example"))

    assert pages[0].screenshots == []
    assert elements[card].disposed
    assert pages[0].registry.disposed
    assert browser.contexts[0].closed


class SingleNodeSnapshot:
    def __init__(self, element):
        self.element = element

    async def resolve(self, node):
        return self.element


def test_body_region_is_synthesized_as_one_block(tree):
    html = tree.add("html", (0, 0, 1366, 2000))
    body = tree.add("body", (0, 0, 1366, 2000), parent=html)
    snapshot = tree.snapshot(body=body)
    element = RecordedElement((0, 0, 1366, 2000), markup="<header>Site</header><div>Stats</div>")
    processor = CaptureProcessor(CaptureSettings(mode="center", synthesize=True))

    markup = asyncio.run(processor._extract_markup(SingleNodeSnapshot(element), Found(snapshot.body)))

    assert markup == f'<div class="{BODY_CLASS}"><header>Site</header><div>Stats</div></div>'
    assert element.scripts == [BODY_CONTENT_JS]
    assert element.disposed


def test_other_regions_use_outer_html(tree):
    body = tree.add("body", (0, 0, 1366, 2000))
    table = tree.add("table", (0, 0, 600, 400), parent=body, display="table")
    snapshot = tree.snapshot(tables=[table], body=body)
    element = RecordedElement((0, 0, 600, 400))

    markup = asyncio.run(CaptureProcessor(CaptureSettings())._extract_markup(
        SingleNodeSnapshot(element), Found(snapshot.tables[0])))

    assert markup == "<table><tr><td>1</td></tr></table>"
    assert "outerHTML" in element.scripts[0]


def test_invalid_environment_is_a_configuration_error(monkeypatch, capsys):
    monkeypatch.setenv("CAPTURE_MODE", "everything")
    monkeypatch.delitem(sys.modules, "config", raising=False)

    status = asyncio.run(main(["https://example.com", "--dry-run"]))

    assert status == 1
    assert "Configuration error" in capsys.readouterr().err
