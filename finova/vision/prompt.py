from __future__ import annotations

from enum import Enum
from typing import NamedTuple

from .schema import DateRange


class PromptVariant(str, Enum):
    DETAILED = "detailed"
    SIMPLE = "simple"


class Section(NamedTuple):
    field: str
    labels: tuple[str, ...]  # first entry is the one we ask the model to write


# ----------------------------
# Label vocabulary (shared with vision.parser)
# ----------------------------
CURRENT_STATUS = "Current Status"
RECOMMENDATION = "Recommendation"
CONFIDENCE = "Confidence"
SHORT_EXPLANATION = "Short Explanation"

PRICE_LABELS: dict[str, str] = {
    "support_price": "Support Price",
    "resistance_price": "Resistance Price",
    "stop_loss_price": "Stop Loss Price",
    "take_profit_price": "Take Profit Price",
}

# Document order matters: a section ends where any later label starts.
SECTIONS: tuple[Section, ...] = (
    Section("trend_analysis", ("Trend Analysis",)),
    Section("support_resistance", ("Support and Resistance", "Support/Resistance", "Support & Resistance")),
    Section("technical_indicators", ("Technical Indicators",)),
    Section("patterns", ("Patterns", "Chart Patterns")),
    Section("risk_assessment", ("Risk Assessment",)),
    Section("current_technical_position", ("Current Technical Position",)),
    Section("gap_analysis", ("Gap Analysis",)),
)

SIMPLE_SECTIONS: tuple[Section, ...] = tuple(s for s in SECTIONS if s.field != "gap_analysis")


_JSON_SCHEMA = """{
  "summary": {
    "currentStatus": string,
    "recommendation": "BUY" | "SELL" | "HOLD",
    "confidence": integer 0-100,
    "shortExplanation": string,
    "priceTargets": {
      "supportPrice": number or null,
      "resistancePrice": number or null,
      "stopLossPrice": number or null,
      "takeProfitPrice": number or null
    }
  },
  "detailedAnalysis": {
    "trendAnalysis": string,
    "supportResistance": string,
    "technicalIndicators": string,
    "patterns": string,
    "riskAssessment": string,
    "currentTechnicalPosition": string,
    "gapAnalysis": {
      "hasGaps": boolean,
      "gaps": [
        {"type": "UP" | "DOWN", "startPrice": number, "endPrice": number, "size": number, "date": string or null, "isFilled": boolean}
      ],
      "analysis": string
    }
  }
}"""


def _summary_template() -> str:
    lines = [
        f"{CURRENT_STATUS}: <one sentence on where price is now>",
        f"{RECOMMENDATION}: <BUY, SELL or HOLD>",
        f"{CONFIDENCE}: <integer 0-100>",
    ]
    lines += [f"{label}: <price or N/A>" for label in PRICE_LABELS.values()]
    lines.append(f"{SHORT_EXPLANATION}: <two or three sentences>")
    return "\n".join(lines)


def _sections_template(sections: tuple[Section, ...]) -> str:
    return "\n\n".join(f"{s.labels[0]}: <analysis>" for s in sections)


def build_prompt(variant: PromptVariant, date_range: DateRange = DateRange.ONE_MONTH) -> str:
    """Instruction text for one analysis attempt.

    Both variants use the same line-anchored labels so the text fallback parser
    can read either answer.
    """
    if variant == PromptVariant.SIMPLE:
        return _build_simple()
    return _build_detailed(date_range)


def _build_detailed(date_range: DateRange) -> str:
    return f"""You are a professional technical analyst. Analyze this stock chart covering {date_range.phrase}.

Think step by step:
1. Identify the overall trend (short-term and long-term).
2. Locate key support and resistance levels and read their exact prices from the price axis.
3. Interpret the technical indicators shown (RSI, MACD, Bollinger Bands, moving averages).
4. Identify chart patterns, if any.
5. Look for price gaps (a jump between one candle's close and the next candle's open). For each gap give the
   start price, end price, date if visible, and whether it has been filled.
6. Assess risk and give price targets.
7. Describe the current technical position and give a recommendation.

Rules:
- Format every price with exactly two decimals (for example 123.45). Do not invent prices you cannot read; use null.
- recommendation MUST be one of BUY, SELL, HOLD. confidence MUST be an integer from 0 to 100.
- Describe gaps using the phrase "gap from <start price> to <end price>".

Respond with a single JSON object matching this schema exactly:
{_JSON_SCHEMA}

If you cannot produce JSON, answer in plain text using exactly these labels, each starting its own line,
with a blank line between the summary and the detailed analysis:

{_summary_template()}

{_sections_template(SECTIONS)}
"""


def _build_simple() -> str:
    return f"""Analyze this stock chart and give a short technical analysis.

Answer in plain text using exactly these labels, each starting its own line, with a blank line between
the summary and the detailed analysis. Recommendation must be BUY, SELL or HOLD and Confidence an integer 0-100.

{_summary_template()}

{_sections_template(SIMPLE_SECTIONS)}
"""
