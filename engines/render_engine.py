"""
Render Engine - RUM Monitor
Page renderer contract and the lightweight structural renderer.

A renderer turns (url, html) into a small list of Samples, at most one per
MetricKind, each attributed to a page element. The scan loop only ever calls
render(); which implementation sits behind it is decided once in app.py.

StructuralRenderer does not execute the page. It scans the markup for
representative elements and synthesizes timing values against them, which
keeps the pipeline populated without a browser. Values are random;
pass a seeded random.Random for reproducible output.
"""

import logging
import random
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from models import MetricKind, Sample

logger = logging.getLogger(__name__)

HEADING_TAGS     = ["h1", "h2", "h3", "h4", "h5", "h6"]
DESCRIPTOR_CHARS = 20

# Upper bounds for synthesized values (lower bound is 0)
SYNTHETIC_RANGES = {
    MetricKind.LCP: 3000.0,
    MetricKind.FCP: 1500.0,
    MetricKind.FID: 200.0,
    MetricKind.CLS: 0.2,
}


class PageRenderer(Protocol):
    name: str

    def render(self, url: str, html: str) -> list[Sample]:
        ...


@dataclass(frozen=True)
class PageElement:
    tag_name:   str
    descriptor: str
    class_list: str = ""
    element_id: str = ""


FALLBACK_ELEMENT = PageElement(
    tag_name="div", descriptor="Main content", class_list="main-content", element_id="main",
)


# ── Element extraction ────────────────────────────────────────────────────────

def _attrs(tag) -> tuple[str, str]:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return " ".join(classes), tag.get("id") or ""


def _text(tag, limit: int = DESCRIPTOR_CHARS) -> str:
    return tag.get_text(" ", strip=True)[:limit]


def extract_elements(html: str) -> list[PageElement]:
    """
    Representative elements in priority order: images with a src, headings,
    div containers carrying an id or class, then buttons and links.
    """
    soup     = BeautifulSoup(html, "html.parser")
    elements = []

    for img in soup.find_all("img", src=True):
        cls, el_id = _attrs(img)
        src_name   = urlparse(img["src"]).path.rstrip("/").split("/")[-1]
        elements.append(PageElement("img", src_name or "image", cls, el_id))

    for heading in soup.find_all(HEADING_TAGS):
        cls, el_id = _attrs(heading)
        elements.append(PageElement(heading.name, _text(heading), cls, el_id))

    for div in soup.find_all("div"):
        if not (div.get("id") or div.get("class")):
            continue
        cls, el_id = _attrs(div)
        elements.append(PageElement("div", "Container", cls, el_id))

    for control in soup.find_all(["button", "a"]):
        if control.name == "a" and not control.get("href"):
            continue
        cls, el_id = _attrs(control)
        default    = "Button" if control.name == "button" else "Link"
        elements.append(PageElement(control.name, _text(control) or default, cls, el_id))

    return elements


def attribute_metrics(elements: list[PageElement]) -> dict[MetricKind, PageElement]:
    """Picks the element each metric is blamed on."""
    if not elements:
        elements = [FALLBACK_ELEMENT]
    last = len(elements) - 1

    interactive = next((el for el in elements if el.tag_name in ("button", "a")), None)
    image       = next((el for el in elements if el.tag_name == "img"), None)

    return {
        MetricKind.LCP: elements[0],
        MetricKind.FCP: elements[min(1, last)],
        MetricKind.FID: interactive or elements[0],
        MetricKind.CLS: image or elements[min(2, last)],
    }


# ── Structural renderer ───────────────────────────────────────────────────────

class StructuralRenderer:
    name = "structural"

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def render(self, url: str, html: str) -> list[Sample]:
        try:
            elements = extract_elements(html or "")
        except Exception as e:
            logger.warning(f"Markup scan failed for {url}, using generic element: {e}")
            elements = []

        if not elements:
            logger.debug(f"No representative elements found on {url}")

        samples = []
        for kind, element in attribute_metrics(elements).items():
            samples.append(Sample(
                kind=kind,
                value=self._rng.uniform(0, SYNTHETIC_RANGES[kind]),
                element=element.descriptor,
                tag_name=element.tag_name,
                class_list=element.class_list,
                element_id=element.element_id,
            ))
        return samples


def make_renderer(name: str, **kwargs) -> PageRenderer:
    """Builds the renderer selected by RUM_RENDERER."""
    if name == StructuralRenderer.name:
        return StructuralRenderer(**kwargs)
    if name == "browser":
        from engines.browser_engine import BrowserRenderer
        return BrowserRenderer(**kwargs)
    raise ValueError(f"Unknown renderer: {name!r} (expected 'structural' or 'browser')")
