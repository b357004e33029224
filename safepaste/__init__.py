"""
SafePaste — prompt injection screening for text headed to AI assistants.

Rule-based, deterministic detection of instruction overrides, role hijacking,
system-prompt extraction and data exfiltration:
  • safepaste.engine — normalization, matching, scoring, dampening, classification
  • safepaste.guard  — paste-guard wrapper with stored settings
  • safepaste.api    — FastAPI scanning service
  • safepaste.cli    — command-line scanner

Usage:
    from safepaste import analyze
    result = analyze("user input here", strict_mode=True)
    if result.flagged:
        print(result.risk, [m.id for m in result.matches])
"""

__version__ = "1.0.0"

from safepaste.engine import (
    analyze,
    normalize_text,
    find_matches,
    compute_score,
    looks_like_ocr,
    is_benign_context,
    has_exfiltration_match,
    apply_dampening,
    build_catalog,
    load_catalog,
    AnalysisResult,
    Match,
    Rule,
    Category,
    CatalogError,
    PATTERNS,
    RiskLevel,
    ThresholdPolicy,
    WarnThresholdMode,
)
from safepaste.batch import batch_analyze

__all__ = [
    "analyze",
    "normalize_text",
    "find_matches",
    "compute_score",
    "looks_like_ocr",
    "is_benign_context",
    "has_exfiltration_match",
    "apply_dampening",
    "build_catalog",
    "load_catalog",
    "batch_analyze",
    "AnalysisResult",
    "Match",
    "Rule",
    "Category",
    "CatalogError",
    "PATTERNS",
    "RiskLevel",
    "ThresholdPolicy",
    "WarnThresholdMode",
    "__version__",
]
