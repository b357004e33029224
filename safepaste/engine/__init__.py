"""SafePaste — detection engine package"""
from .catalog import (
    PATTERNS,
    Rule,
    Category,
    CatalogError,
    build_catalog,
    load_catalog,
    load_catalog_yaml,
    load_catalog_json,
)
from .policy import (
    RiskLevel,
    WarnThresholdMode,
    ThresholdPolicy,
    risk_level,
)
from .detector import (
    analyze,
    normalize_text,
    find_matches,
    compute_score,
    looks_like_ocr,
    is_benign_context,
    has_exfiltration_match,
    apply_dampening,
    group_by_category,
    AnalysisResult,
    AnalysisMeta,
    Match,
)

__all__ = [
    "PATTERNS",
    "Rule",
    "Category",
    "CatalogError",
    "build_catalog",
    "load_catalog",
    "load_catalog_yaml",
    "load_catalog_json",
    "RiskLevel",
    "WarnThresholdMode",
    "ThresholdPolicy",
    "risk_level",
    "analyze",
    "normalize_text",
    "find_matches",
    "compute_score",
    "looks_like_ocr",
    "is_benign_context",
    "has_exfiltration_match",
    "apply_dampening",
    "group_by_category",
    "AnalysisResult",
    "AnalysisMeta",
    "Match",
]
