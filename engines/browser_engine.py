"""
Browser Engine - RUM Monitor
Full-browser page renderer backed by headless Chromium (Playwright).

The already-fetched HTML is served at its real URL through request
interception, so relative assets and scripts resolve as they would for a
visitor. A PerformanceObserver collector is installed before any page script
runs; after the page settles, one synthetic click lets first-input fire and
the collected entries are read back with their element attribution.
"""

import asyncio
import logging
import math
from urllib.parse import urlsplit

from playwright.async_api import async_playwright

from engines.render_engine import FALLBACK_ELEMENT
from models import MetricKind, Sample

logger = logging.getLogger(__name__)

COLLECTOR_SCRIPT = """() => {
    const describe = (el) => el ? {
        element:   (el.getAttribute && el.getAttribute('src'))
                       ? el.getAttribute('src').split('/').pop()
                       : (el.textContent || '').trim().substring(0, 20),
        tagName:   (el.tagName || '').toLowerCase(),
        classList: el.classList ? Array.from(el.classList).join(' ') : '',
        id:        el.id || ''
    } : {element: '', tagName: '', classList: '', id: ''};

    const latest = {};
    let cls = 0, clsNode = null;

    const observe = (type, handler) => {
        try {
            new PerformanceObserver(list => list.getEntries().forEach(handler))
                .observe({type: type, buffered: true});
        } catch (e) { /* entry type unsupported */ }
    };

    observe('largest-contentful-paint', e => {
        latest.LCP = Object.assign({name: 'LCP', value: e.startTime}, describe(e.element));
    });
    observe('paint', e => {
        if (e.name === 'first-contentful-paint') {
            latest.FCP = Object.assign({name: 'FCP', value: e.startTime},
                                       describe(document.body && document.body.firstElementChild));
        }
    });
    observe('layout-shift', e => {
        if (e.hadRecentInput) return;
        cls += e.value;
        if (!clsNode && e.sources && e.sources.length) clsNode = e.sources[0].node;
        latest.CLS = Object.assign({name: 'CLS', value: cls}, describe(clsNode));
    });
    observe('first-input', e => {
        latest.FID = Object.assign({name: 'FID', value: e.processingStart - e.startTime},
                                   describe(e.target));
    });

    window.__rumSamples = () => Object.values(latest);
}"""


def samples_from_payload(raw: list) -> list[Sample]:
    """Converts collector output into Samples; unknown or malformed entries are dropped."""
    samples = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            continue
        kind  = MetricKind.parse(entry.get("name"))
        value = entry.get("value")
        if kind is None or not isinstance(value, (int, float)) or isinstance(value, bool):
            continue
        if isinstance(value, float) and not math.isfinite(value):
            continue

        tag = entry.get("tagName")
        if not tag:
            # metric fired without a node (e.g. buffered paint)
            el = FALLBACK_ELEMENT
            samples.append(Sample(kind, max(0.0, float(value)), el.descriptor,
                                  el.tag_name, el.class_list, el.element_id))
            continue

        samples.append(Sample(
            kind=kind,
            value=max(0.0, float(value)),
            element=entry.get("element") or tag,
            tag_name=tag,
            class_list=entry.get("classList") or "",
            element_id=entry.get("id") or "",
        ))
    return samples


def _document_key(url: str) -> tuple:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower(), parts.path.rstrip("/"), parts.query


def is_target_document(request_url: str, target_url: str) -> bool:
    """
    True when the browser is requesting the monitored page itself. Chromium
    requests "https://host" as "https://host/", so trailing slashes and
    fragments are ignored.
    """
    return _document_key(request_url) == _document_key(target_url)


class BrowserRenderer:
    name = "browser"

    def __init__(self, settle_ms: int = 1500, navigation_timeout_ms: int = 30000):
        self.settle_ms             = settle_ms
        self.navigation_timeout_ms = navigation_timeout_ms

    def render(self, url: str, html: str) -> list[Sample]:
        """Sync entry point; each call drives its own event loop and browser."""
        return asyncio.run(self._render(url, html))

    async def _render(self, url: str, html: str) -> list[Sample]:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=True)
            context = await browser.new_context(
                viewport={"width": 1280, "height": 800},
                ignore_https_errors=True,
            )
            page = await context.new_page()
            try:
                async def serve_fetched(route):
                    await route.fulfill(status=200, content_type="text/html", body=html or "")

                await page.route(lambda request_url: is_target_document(request_url, url), serve_fetched)
                await page.add_init_script(f"({COLLECTOR_SCRIPT})()")

                try:
                    await page.goto(url, wait_until="load", timeout=self.navigation_timeout_ms)
                except Exception as nav_err:
                    # Subresources may stall; whatever painted is still measurable
                    logger.debug(f"load wait cut short for {url}: {nav_err}")

                try:
                    await page.mouse.click(5, 5)
                except Exception:
                    logger.debug(f"synthetic click failed for {url}")

                await page.wait_for_timeout(self.settle_ms)
                raw = await page.evaluate("() => window.__rumSamples ? window.__rumSamples() : []")
            finally:
                await page.close()
                await context.close()
                await browser.close()

        samples = samples_from_payload(raw)
        logger.debug(f"Browser renderer collected {len(samples)} sample(s) for {url}")
        return samples
