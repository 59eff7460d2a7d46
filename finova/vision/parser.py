from __future__ import annotations

import json
import logging
import math
import re
from functools import lru_cache
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .prompt import (
    CONFIDENCE,
    CURRENT_STATUS,
    PRICE_LABELS,
    RECOMMENDATION,
    SECTIONS,
    SHORT_EXPLANATION,
    Section,
)
from .schema import (
    DetailedAnalysis,
    GapAnalysis,
    GapEvent,
    PriceTargets,
    Summary,
    TechnicalAnalysisRecord,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_PRICE_JUNK_RE = re.compile(r"(?:USD|US\$|[\s,$€£¥₹])", re.IGNORECASE)
_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?|-?\.\d+")
_CONFIDENCE_STR_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*%?\s*$")
_RECOMMENDATION_RE = re.compile(r"\b(BUY|SELL|HOLD)\b", re.IGNORECASE)

# Optional markdown heading / bullet / numbering in front of a label.
_LABEL_PREFIX = r"^[ \t]*(?:#{1,6}[ \t]*|[-*•][ \t]*|\d+[.)][ \t]*)?"
_BLOCK_SPLIT_RE = re.compile(r"\n[ \t]*\n")

_GAP_RE = re.compile(
    r"\b(?:gap|break|jump)s?(?:[ \t]+(?:up|down))?\s+(?:of|at|from|to|between)\s+"
    r"\$?(\d[\d,]*(?:\.\d+)?)\s+(?:to|and)\s+\$?(\d[\d,]*(?:\.\d+)?)",
    re.IGNORECASE,
)
_FILLED_RE = re.compile(r"\bfilled\b", re.IGNORECASE)
_NEGATIONS = {"not", "never", "no", "yet"}


# ----------------------------
# Price normalizer
# ----------------------------
def extract_price(value: Any) -> Optional[float]:
    """'$1,234.50' -> 1234.5, 42 -> 42.0, anything unreadable -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            x = float(value)
        except OverflowError:  # JSON integers have no size limit
            return None
        return x if math.isfinite(x) else None
    if isinstance(value, str):
        s = _PRICE_JUNK_RE.sub("", value)
        if not s:
            return None
        try:
            x = float(s)
        except ValueError:
            return None
        return x if math.isfinite(x) else None
    return None


def _first_price(text: str) -> Optional[float]:
    m = _NUMBER_RE.search(text or "")
    return extract_price(m.group(0)) if m else None


# ----------------------------
# Structured (JSON) parsing
# ----------------------------
def _json_candidates(raw: str):
    m = _FENCE_RE.search(raw)
    body = (m.group(1) if m else raw).strip()
    yield body
    start, end = body.find("{"), body.rfind("}")
    if 0 <= start < end and (start, end) != (0, len(body) - 1):
        yield body[start : end + 1]


def _load_json_object(raw: str) -> Optional[dict]:
    for candidate in _json_candidates(raw or ""):
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _get(d: Any, *keys: str) -> Any:
    if not isinstance(d, dict):
        return None
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return None


def _as_dict(v: Any) -> dict:
    return v if isinstance(v, dict) else {}


def _text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v.strip()
    if isinstance(v, list):
        return "\n".join(t for t in (_text(x) for x in v) if t)
    if isinstance(v, dict):
        return "; ".join(f"{k}: {_text(x)}" for k, x in v.items())
    return str(v)


def _confidence(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        m = _CONFIDENCE_STR_RE.match(v)
        if not m:
            return None
        v = float(m.group(1))
    if isinstance(v, float):
        return int(round(v)) if math.isfinite(v) else None
    return None


def _recommendation(v: Any) -> Optional[str]:
    if not isinstance(v, str):
        return None
    m = _RECOMMENDATION_RE.search(v)
    return m.group(1).upper() if m else None


def _bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in ("true", "yes", "1")
    if isinstance(v, (int, float)):
        return bool(v)
    return False


def _gap_events(items: Any) -> list[GapEvent]:
    out: list[GapEvent] = []
    if not isinstance(items, list):
        return out
    for g in items:
        if not isinstance(g, dict):
            continue
        start = extract_price(_get(g, "startPrice", "start_price"))
        end = extract_price(_get(g, "endPrice", "end_price"))
        if start is None or end is None:
            continue
        date = _get(g, "date")
        gap = GapEvent.between(
            start,
            end,
            date=_text(date) or None,
            is_filled=_bool(_get(g, "isFilled", "is_filled")),
        )
        declared = str(_get(g, "type") or "").strip().upper()
        if declared in ("UP", "DOWN"):
            gap.type = declared
        out.append(gap)
    return out


def try_structured_parse(raw: str) -> Optional[TechnicalAnalysisRecord]:
    """Read the answer as (optionally fenced) JSON. None means 'not JSON we can use'."""
    data = _load_json_object(raw)
    if data is None or ("summary" not in data and "detailedAnalysis" not in data):
        return None

    s = _as_dict(data.get("summary"))
    d = _as_dict(data.get("detailedAnalysis"))
    pt = _as_dict(_get(s, "priceTargets", "price_targets"))
    ga = _as_dict(_get(d, "gapAnalysis", "gap_analysis"))

    try:
        gaps = _gap_events(_get(ga, "gaps"))
        return TechnicalAnalysisRecord(
            summary=Summary(
                current_status=_text(_get(s, "currentStatus", "current_status")),
                recommendation=_recommendation(_get(s, "recommendation")),
                confidence=_confidence(_get(s, "confidence")),
                short_explanation=_text(_get(s, "shortExplanation", "short_explanation")),
                price_targets=PriceTargets(
                    **{field: extract_price(_get(pt, _camel(field), field)) for field in PRICE_LABELS}
                ),
            ),
            detailed_analysis=DetailedAnalysis(
                trend_analysis=_text(_get(d, "trendAnalysis", "trend_analysis")),
                support_resistance=_text(_get(d, "supportResistance", "support_resistance")),
                technical_indicators=_text(_get(d, "technicalIndicators", "technical_indicators")),
                patterns=_text(_get(d, "patterns")),
                risk_assessment=_text(_get(d, "riskAssessment", "risk_assessment")),
                current_technical_position=_text(_get(d, "currentTechnicalPosition", "current_technical_position")),
                gap_analysis=GapAnalysis(
                    has_gaps=_bool(_get(ga, "hasGaps", "has_gaps")) or bool(gaps),
                    gaps=gaps,
                    analysis=_text(_get(ga, "analysis")),
                ),
            ),
        )
    except ValidationError as e:
        logger.warning("Structured answer did not fit the record: %s", e.error_count())
        return None


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


# ----------------------------
# Heuristic (labelled text) parsing
# ----------------------------
def _alternation(labels) -> str:
    return "(?:" + "|".join(re.escape(l) for l in sorted(labels, key=len, reverse=True)) + ")"


def _label_pattern(labels) -> str:
    return _LABEL_PREFIX + _alternation(labels) + r"[ \t]*:[ \t]*"


@lru_cache(maxsize=32)
def _section_patterns(sections: tuple[Section, ...]) -> tuple[tuple[str, re.Pattern], ...]:
    """Compile one pattern per section; each stops where any later label begins."""
    out = []
    for i, section in enumerate(sections):
        later = [label for s in sections[i + 1 :] for label in s.labels]
        stop = rf"(?={_LABEL_PREFIX}{_alternation(later)}[ \t]*:|\Z)" if later else r"\Z"
        pattern = re.compile(_label_pattern(section.labels) + r"(.*?)" + stop, re.M | re.S | re.I)
        out.append((section.field, pattern))
    return tuple(out)


def _line_value(block: str, label: str, value: str = r"([^\n]*)") -> Optional[str]:
    m = re.search(_label_pattern([label]) + value, block, re.M | re.I)
    return m.group(1).strip() if m else None


def _find_label(blocks: list[str], labels) -> tuple[Optional[int], int]:
    pattern = re.compile(_label_pattern(labels), re.M | re.I)
    for i, block in enumerate(blocks):
        m = pattern.search(block)
        if m:
            return i, m.start()
    return None, 0


def _is_filled(text: str) -> bool:
    """True when 'filled' appears at least once without a negation just before it."""
    for m in _FILLED_RE.finditer(text):
        before = re.findall(r"[a-z']+", text[max(0, m.start() - 40) : m.start()].lower())[-3:]
        if not any(w in _NEGATIONS or w.endswith("n't") for w in before):
            return True
    return False


def mine_gaps(text: str) -> GapAnalysis:
    """Pull price gaps out of a free-text gap analysis paragraph."""
    filled = _is_filled(text)
    gaps: list[GapEvent] = []
    for m in _GAP_RE.finditer(text):
        start, end = extract_price(m.group(1)), extract_price(m.group(2))
        if start is None or end is None:
            continue
        gaps.append(GapEvent.between(start, end, is_filled=filled))
    return GapAnalysis(has_gaps=bool(gaps), gaps=gaps, analysis=text.strip())


def _parse_summary(block: str) -> Summary:
    confidence = _line_value(block, CONFIDENCE, r"(\d{1,3})(?!\d)")
    recommendation = _line_value(block, RECOMMENDATION, r"(BUY|SELL|HOLD)\b")
    return Summary(
        current_status=_line_value(block, CURRENT_STATUS) or "",
        recommendation=recommendation.upper() if recommendation else None,
        confidence=int(confidence) if confidence else None,
        short_explanation=_line_value(block, SHORT_EXPLANATION, r"((?s:.*?))(?=\n[ \t]*\n|\Z)") or "",
        price_targets=PriceTargets(
            **{field: _first_price(_line_value(block, label) or "") for field, label in PRICE_LABELS.items()}
        ),
    )


def _parse_detailed(text: str, sections: tuple[Section, ...]) -> DetailedAnalysis:
    found: dict[str, str] = {}
    for field, pattern in _section_patterns(sections):
        m = pattern.search(text)
        if m:
            found[field] = m.group(1).strip()

    gap_text = found.pop("gap_analysis", None)
    detailed = DetailedAnalysis(**found)
    if gap_text is not None:
        detailed.gap_analysis = mine_gaps(gap_text)
    return detailed


def parse_text_analysis(raw: str, sections: tuple[Section, ...] = SECTIONS) -> TechnicalAnalysisRecord:
    """Label-anchored extraction from a plain-text answer. Never raises."""
    text = (raw or "").replace("\r\n", "\n").replace("**", "")
    blocks = _BLOCK_SPLIT_RE.split(text)
    section_labels = [label for s in sections for label in s.labels]

    summary_idx, summary_pos = _find_label(blocks, [CURRENT_STATUS])
    detail_idx, detail_pos = _find_label(blocks, section_labels)

    summary_text = detail_text = None
    if summary_idx is not None:
        block = blocks[summary_idx]
        if summary_idx == detail_idx and summary_pos < detail_pos:
            block = block[:detail_pos]
        summary_text = block[summary_pos:]

    if detail_idx is not None:
        first = blocks[detail_idx]
        if summary_idx == detail_idx and detail_pos < summary_pos:
            parts = [first[detail_pos:summary_pos]]
        else:
            parts = [first[detail_pos:]]
        # everything after the first section label except the summary block
        parts += [b for i, b in enumerate(blocks) if i > detail_idx and i != summary_idx]
        detail_text = "\n\n".join(parts)

    return TechnicalAnalysisRecord(
        summary=_parse_summary(summary_text) if summary_text is not None else Summary(),
        detailed_analysis=_parse_detailed(detail_text, sections) if detail_text is not None else DetailedAnalysis(),
    )


# ----------------------------
# Strategy chain
# ----------------------------
ParseStrategy = Callable[[str], Optional[TechnicalAnalysisRecord]]

PARSE_STRATEGIES: tuple[tuple[str, ParseStrategy], ...] = (
    ("structured", try_structured_parse),
    ("text", parse_text_analysis),
)


def parse_response(raw: str, strategies=PARSE_STRATEGIES) -> TechnicalAnalysisRecord:
    """First strategy that returns a record wins; an empty record if none do."""
    for name, strategy in strategies:
        record = strategy(raw)
        if record is not None:
            logger.info("Parsed model answer with %s strategy", name)
            return record
    logger.warning("No parse strategy produced a record; returning an empty one")
    return TechnicalAnalysisRecord()
