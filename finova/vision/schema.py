from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------
# Enumerations
# ----------------------------
Recommendation = Literal["BUY", "SELL", "HOLD"]
GapType = Literal["UP", "DOWN"]


class DateRange(str, Enum):
    ONE_DAY = "ONE_DAY"
    FIVE_DAYS = "FIVE_DAYS"
    TEN_DAYS = "TEN_DAYS"
    ONE_MONTH = "ONE_MONTH"
    SIX_MONTHS = "SIX_MONTHS"
    ONE_YEAR = "ONE_YEAR"
    FIVE_YEARS = "FIVE_YEARS"
    ALL_TIME = "ALL_TIME"

    @property
    def phrase(self) -> str:
        """Human wording used inside prompts."""
        return _PHRASES[self]

    @property
    def tradingview_range(self) -> str:
        return _TV_RANGES[self]


_PHRASES = {
    DateRange.ONE_DAY: "the last trading day",
    DateRange.FIVE_DAYS: "the last 5 days",
    DateRange.TEN_DAYS: "the last 10 days",
    DateRange.ONE_MONTH: "the last month",
    DateRange.SIX_MONTHS: "the last 6 months",
    DateRange.ONE_YEAR: "the last year",
    DateRange.FIVE_YEARS: "the last 5 years",
    DateRange.ALL_TIME: "the full available history",
}

_TV_RANGES = {
    DateRange.ONE_DAY: "1D",
    DateRange.FIVE_DAYS: "5D",
    DateRange.TEN_DAYS: "10D",
    DateRange.ONE_MONTH: "1M",
    DateRange.SIX_MONTHS: "6M",
    DateRange.ONE_YEAR: "12M",
    DateRange.FIVE_YEARS: "60M",
    DateRange.ALL_TIME: "ALL",
}


# ----------------------------
# Summary
# ----------------------------
class PriceTargets(_WireModel):
    support_price: Optional[float] = None
    resistance_price: Optional[float] = None
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None


class Summary(_WireModel):
    current_status: str = ""
    # None until defaulting; a filled record always carries a value
    recommendation: Optional[Recommendation] = None
    confidence: Optional[int] = None
    short_explanation: str = ""
    price_targets: PriceTargets = Field(default_factory=PriceTargets)


# ----------------------------
# Detailed analysis
# ----------------------------
class GapEvent(_WireModel):
    type: GapType
    start_price: float
    end_price: float
    size: float
    date: Optional[str] = None
    is_filled: bool = False

    @classmethod
    def between(cls, start: float, end: float, *, date: str | None = None, is_filled: bool = False) -> "GapEvent":
        return cls(
            type="UP" if end > start else "DOWN",
            start_price=start,
            end_price=end,
            size=round(abs(end - start), 10),
            date=date,
            is_filled=is_filled,
        )


class GapAnalysis(_WireModel):
    has_gaps: bool = False
    gaps: List[GapEvent] = Field(default_factory=list)
    analysis: str = ""


class DetailedAnalysis(_WireModel):
    trend_analysis: str = ""
    support_resistance: str = ""
    technical_indicators: str = ""
    patterns: str = ""
    risk_assessment: str = ""
    current_technical_position: str = ""
    gap_analysis: GapAnalysis = Field(default_factory=GapAnalysis)


# ----------------------------
# Record
# ----------------------------
class AnalysisMetadata(_WireModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model: str = ""
    date_range: DateRange = DateRange.ONE_MONTH


class TechnicalAnalysisRecord(_WireModel):
    summary: Summary = Field(default_factory=Summary)
    detailed_analysis: DetailedAnalysis = Field(default_factory=DetailedAnalysis)
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
