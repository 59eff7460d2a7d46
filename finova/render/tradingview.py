from __future__ import annotations

import asyncio
import json
import logging
import re

from botocore.exceptions import BotoCoreError, ClientError
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..core.config import Settings
from ..core.store import ChartStore
from ..vision.errors import InvalidSymbolError, RenderError
from ..vision.schema import DateRange

logger = logging.getLogger(__name__)

_SYMBOL_RE = re.compile(r"[A-Z0-9.:\-_]{1,20}")

VIEWPORT = {"width": 2560, "height": 1440}
STUDIES = [
    "RSI@tv-basicstudies",
    "MACD@tv-basicstudies",
    "BB@tv-basicstudies",
    "MASimple@tv-basicstudies",
]


def normalize_symbol(symbol: str) -> str:
    sym = (symbol or "").strip().upper()
    if not _SYMBOL_RE.fullmatch(sym):
        raise InvalidSymbolError(f"Invalid chart symbol: {symbol!r}")
    return sym


def build_widget_html(symbol: str, date_range: DateRange) -> str:
    """Standalone page hosting a TradingView widget for ``symbol``."""
    widget = {
        "container_id": "tradingview_widget",
        "symbol": symbol,
        "interval": "D",
        "range": date_range.tradingview_range,
        "timezone": "Etc/UTC",
        "theme": "dark",
        "style": "1",
        "locale": "en",
        "enable_publishing": False,
        "allow_symbol_change": False,
        "save_image": False,
        "autosize": True,
        "studies": STUDIES,
    }
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>TradingView Chart</title>
  <style>
    html, body {{ margin: 0; padding: 0; width: 100%; height: 100%; overflow: hidden; }}
    #tradingview_widget {{ width: 100%; height: 100vh; }}
  </style>
</head>
<body>
  <div id="tradingview_widget"></div>
  <script src="https://s3.tradingview.com/tv.js"></script>
  <script>new TradingView.widget({json.dumps(widget)});</script>
</body>
</html>
"""


class TradingViewRenderer:
    """Headless Chromium capture of a TradingView chart into the chart store."""

    def __init__(self, settings: Settings, store: ChartStore):
        self.store = store
        self.timeout_s = settings.render_timeout_sec
        self.settle_s = settings.render_settle_sec

    async def render(self, symbol: str, date_range: DateRange = DateRange.ONE_MONTH) -> str:
        sym = normalize_symbol(symbol)
        logger.info("Rendering %s chart for %s", date_range.value, sym)

        try:
            png = await asyncio.wait_for(self._screenshot(sym, date_range), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise RenderError(f"Chart render timed out after {self.timeout_s}s for {sym}") from e
        except PlaywrightError as e:
            raise RenderError(f"Chart render failed for {sym}: {e}") from e

        if not png:
            raise RenderError(f"Chart render produced no image for {sym}")

        try:
            ref = await asyncio.to_thread(self.store.put, png, name=sym)
        except (OSError, BotoCoreError, ClientError) as e:
            raise RenderError(f"Could not store chart for {sym}: {e}") from e

        logger.info("Chart saved: %s", ref)
        return ref

    async def _screenshot(self, symbol: str, date_range: DateRange) -> bytes:
        async with async_playwright() as p:
            browser = await p.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            try:
                page = await browser.new_page(viewport=VIEWPORT, device_scale_factor=1.5)
                await page.set_content(build_widget_html(symbol, date_range), wait_until="networkidle")
                await page.wait_for_selector("#tradingview_widget iframe", timeout=30_000)
                # indicators keep drawing after the iframe shows up
                await page.wait_for_timeout(self.settle_s * 1000)
                return await page.screenshot(full_page=True)
            finally:
                await browser.close()
