from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from ..core.config import Settings
from ..core.store import ChartStore, get_chart_store
from .client import GeminiClient
from .errors import InvalidImageError
from .parser import parse_response
from .preprocess import preprocess_to_png_bytes
from .prompt import PromptVariant, build_prompt
from .schema import AnalysisMetadata, DateRange, TechnicalAnalysisRecord
from .validate import validate_analysis, validate_and_fill

logger = logging.getLogger(__name__)

# More missing critical fields than this after the detailed attempt -> one simple retry.
MAX_MISSING_CRITICAL = 3


class AttemptState(str, Enum):
    DETAILED = "detailed"
    SIMPLE = "simple"
    DONE = "done"


_PROMPT_FOR_STATE = {
    AttemptState.DETAILED: PromptVariant.DETAILED,
    AttemptState.SIMPLE: PromptVariant.SIMPLE,
}


def next_state(state: AttemptState, missing_count: int) -> AttemptState:
    """Only the detailed attempt can escalate, and only once."""
    if state == AttemptState.DETAILED and missing_count > MAX_MISSING_CRITICAL:
        return AttemptState.SIMPLE
    return AttemptState.DONE


class InferenceClient(Protocol):
    async def infer(self, prompt: str, png_bytes: bytes) -> str: ...


class ChartRenderer(Protocol):
    async def render(self, symbol: str, date_range: DateRange) -> str: ...


class ChartAnalyzer:
    """Chart image -> TechnicalAnalysisRecord.

    Each call is an independent linear pipeline: at most two sequential model
    calls, nothing shared between requests.
    """

    def __init__(
        self,
        settings: Settings,
        client: InferenceClient | None = None,
        store: ChartStore | None = None,
        renderer: ChartRenderer | None = None,
    ):
        self.settings = settings
        self.client = client or GeminiClient(settings)
        self.store = store or get_chart_store(settings)
        self._renderer = renderer

    @property
    def renderer(self) -> ChartRenderer:
        if self._renderer is None:
            from ..render.tradingview import TradingViewRenderer

            self._renderer = TradingViewRenderer(self.settings, self.store)
        return self._renderer

    async def analyze_chart_bytes(
        self, image_bytes: bytes, date_range: DateRange = DateRange.ONE_MONTH
    ) -> TechnicalAnalysisRecord:
        metadata = AnalysisMetadata(
            timestamp=datetime.now(timezone.utc),
            model=self.settings.gemini_model,
            date_range=date_range,
        )
        try:
            png = preprocess_to_png_bytes(image_bytes, max_side=self.settings.image_max_side)
        except (OSError, ValueError) as e:  # PIL.UnidentifiedImageError is an OSError
            raise InvalidImageError(f"Chart image could not be read: {type(e).__name__}: {e}") from e

        state = AttemptState.DETAILED
        record = TechnicalAnalysisRecord()
        while state != AttemptState.DONE:
            prompt = build_prompt(_PROMPT_FOR_STATE[state], date_range)
            logger.info("Chart analysis attempt: %s prompt", state.value)

            raw = await self.client.infer(prompt, png)
            partial = parse_response(raw)
            missing = validate_analysis(partial)
            record = validate_and_fill(partial)

            if missing:
                logger.info("Missing critical fields (%d): %s", len(missing), ", ".join(missing))
            state = next_state(state, len(missing))
            if state == AttemptState.SIMPLE:
                logger.warning("Analysis too incomplete, retrying once with the simple prompt")

        record.metadata = metadata
        return record

    async def analyze_chart_image(
        self, image_ref: str, date_range: DateRange = DateRange.ONE_MONTH
    ) -> TechnicalAnalysisRecord:
        logger.debug("Reading chart image %s", image_ref)
        image_bytes = await asyncio.to_thread(self.store.get, image_ref)
        return await self.analyze_chart_bytes(image_bytes, date_range)

    async def capture_and_analyze(
        self, symbol: str, date_range: DateRange = DateRange.ONE_MONTH
    ) -> TechnicalAnalysisRecord:
        ref = await self.renderer.render(symbol, date_range)
        try:
            return await self.analyze_chart_image(ref, date_range)
        finally:
            await self._cleanup(ref)

    async def _cleanup(self, ref: str) -> None:
        try:
            await asyncio.to_thread(self.store.delete, ref)
        except Exception:
            logger.warning("Failed to delete chart artifact %s", ref, exc_info=True)
