from __future__ import annotations

from .schema import TechnicalAnalysisRecord

DEFAULT_CONFIDENCE = 50
DEFAULT_RECOMMENDATION = "HOLD"

# (section, attribute, wire name) in the order completeness is reported
CRITICAL_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("summary", "current_status", "currentStatus"),
    ("summary", "short_explanation", "shortExplanation"),
    ("detailed_analysis", "trend_analysis", "trendAnalysis"),
    ("detailed_analysis", "support_resistance", "supportResistance"),
    ("detailed_analysis", "technical_indicators", "technicalIndicators"),
    ("detailed_analysis", "patterns", "patterns"),
    ("detailed_analysis", "risk_assessment", "riskAssessment"),
    ("detailed_analysis", "current_technical_position", "currentTechnicalPosition"),
)

PLACEHOLDERS: dict[str, str] = {
    "current_status": "Current status not available",
    "short_explanation": "Short explanation not available",
    "trend_analysis": "Trend analysis not available",
    "support_resistance": "Support and resistance analysis not available",
    "technical_indicators": "Technical indicators analysis not available",
    "patterns": "No patterns identified",
    "risk_assessment": "Risk assessment not available",
    "current_technical_position": "Current technical position not available",
}
GAP_ANALYSIS_PLACEHOLDER = "No gap analysis available"


def _blank(v: str | None) -> bool:
    return not (v or "").strip()


def validate_analysis(record: TechnicalAnalysisRecord) -> list[str]:
    """Wire names of critical fields that are empty. Run it before defaulting."""
    missing: list[str] = []
    for section, attr, wire in CRITICAL_FIELDS:
        if _blank(getattr(getattr(record, section), attr)):
            missing.append(wire)
    return missing


def validate_and_fill(partial: TechnicalAnalysisRecord) -> TechnicalAnalysisRecord:
    """Return a copy with every field populated. Prices are never made up."""
    record = partial.model_copy(deep=True)

    for section, attr, _ in CRITICAL_FIELDS:
        target = getattr(record, section)
        value = getattr(target, attr)
        setattr(target, attr, PLACEHOLDERS[attr] if _blank(value) else value.strip())

    s = record.summary
    if s.recommendation not in ("BUY", "SELL", "HOLD"):
        s.recommendation = DEFAULT_RECOMMENDATION
    s.confidence = DEFAULT_CONFIDENCE if s.confidence is None else min(100, max(0, int(s.confidence)))

    ga = record.detailed_analysis.gap_analysis
    ga.gaps = list(ga.gaps or [])
    ga.has_gaps = bool(ga.has_gaps or ga.gaps)
    if _blank(ga.analysis):
        ga.analysis = GAP_ANALYSIS_PLACEHOLDER

    return record
