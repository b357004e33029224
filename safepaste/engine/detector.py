"""
SafePaste — prompt injection detection engine.

Deterministic, rule-based scan of text that is about to be handed to an AI
assistant. Pipeline:

  1. Normalizer   — canonical form of the text (diagnostics only)
  2. Matcher      — every catalog rule against the raw text, first hit per rule
  3. Scorer       — sum of matched weights, capped at 100
  4. Heuristics   — OCR-likeness (advisory) and benign/educational framing
  5. Dampener     — 25% reduction for benign framing, never for exfiltration
  6. Classifier   — risk label plus flagged decision under a threshold policy

The engine is pure: no I/O, no shared mutable state, never raises for any
input value. Length caps are the caller's job.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from safepaste.engine.catalog import PATTERNS, Rule, compile_pattern
from safepaste.engine.policy import RiskLevel, ThresholdPolicy, risk_level

logger = logging.getLogger("safepaste.engine")

MAX_SCORE = 100
DAMPENING_FACTOR = 0.75
EXFILTRATION_PREFIX = "exfiltrate."


@dataclass(frozen=True)
class Match:
    id: str
    category: str
    weight: int
    explanation: str
    snippet: str            # exact substring of the raw input, original casing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "weight": self.weight,
            "explanation": self.explanation,
            "snippet": self.snippet,
        }


@dataclass
class AnalysisMeta:
    raw_score: int
    benign_context: bool
    dampened: bool
    ocr_detected: bool
    strict_mode: bool
    text_length: int
    pattern_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rawScore": self.raw_score,
            "benignContext": self.benign_context,
            "dampened": self.dampened,
            "ocrDetected": self.ocr_detected,
            "strictMode": self.strict_mode,
            "textLength": self.text_length,
            "patternCount": self.pattern_count,
        }


@dataclass
class AnalysisResult:
    flagged: bool
    risk: str
    score: int
    threshold: int
    matches: List[Match] = field(default_factory=list)
    categories: Dict[str, List[Match]] = field(default_factory=dict)
    meta: Optional[AnalysisMeta] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form with the wire field names."""
        return {
            "flagged": self.flagged,
            "risk": self.risk,
            "score": self.score,
            "threshold": self.threshold,
            "matches": [m.to_dict() for m in self.matches],
            "categories": {
                cat: [
                    {"id": m.id, "weight": m.weight, "explanation": m.explanation, "snippet": m.snippet}
                    for m in bucket
                ]
                for cat, bucket in self.categories.items()
            },
            "meta": self.meta.to_dict() if self.meta else {},
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Normalizer
# ═══════════════════════════════════════════════════════════════════════════════

_ZERO_WIDTH = re.compile(r"[\u200B-\u200D\uFEFF]")
_HSPACE_RUN = re.compile(r"[ \t]+")


def normalize_text(text: Any) -> str:
    """NFKC, strip zero-width chars, collapse spaces/tabs, CRLF to LF, trim, lowercase."""
    if not isinstance(text, str):
        return ""
    s = unicodedata.normalize("NFKC", text)
    s = _ZERO_WIDTH.sub("", s)
    s = _HSPACE_RUN.sub(" ", s)
    s = s.replace("\r\n", "\n")
    return s.strip().lower()


# ═══════════════════════════════════════════════════════════════════════════════
# Matcher / Scorer
# ═══════════════════════════════════════════════════════════════════════════════


def find_matches(text: Any, catalog: Optional[Sequence[Rule]] = None) -> List[Match]:
    """Run every rule against the raw text; record the first hit per rule.

    Result order is catalog order. A rule without a matcher, or whose matcher
    raises, is skipped so the remaining rules still run.
    """
    if not isinstance(text, str):
        return []
    rules = PATTERNS if catalog is None else catalog

    matches: List[Match] = []
    for rule in rules:
        try:
            if rule.matcher is None:
                continue
            m = rule.matcher.search(text)
            if m and m.group(0):
                matches.append(Match(
                    id=str(rule.id),
                    category=str(rule.category),
                    weight=int(rule.weight),
                    explanation=str(rule.explanation),
                    snippet=m.group(0),
                ))
        except Exception as exc:
            logger.debug("Skipping rule %r: %s", getattr(rule, "id", rule), exc)
            continue
    return matches


def compute_score(matches: Iterable[Match]) -> int:
    return min(MAX_SCORE, sum(m.weight for m in matches))


# ═══════════════════════════════════════════════════════════════════════════════
# Heuristics
# ═══════════════════════════════════════════════════════════════════════════════

_WEIRD_SPACING = compile_pattern(r"[a-z]\s{2,}[a-z]", re.IGNORECASE)
_PIPES_BULLETS = compile_pattern(r"[|\u2022\u00B7]", 0)
_MIXED_SCRIPTS = compile_pattern(r"[a-z].*[\u0400-\u04FF]|[\u0400-\u04FF].*[a-z]", re.IGNORECASE)

_EDUCATIONAL = compile_pattern(
    r"\b(for example|example:|e\.g\.|such as|demo|demonstration|explanation|in this article|"
    r"in this post|research|paper|study|documentation|docs)\b",
    re.IGNORECASE,
)
_META_PROMPT_INJECTION = compile_pattern(r"\bprompt injection\b", re.IGNORECASE)
_QUOTES = compile_pattern(r"[\"\u201C\u201D'\u2018\u2019]", 0)
_CODE_FENCE = compile_pattern(r"```", 0)
_BLOCK_QUOTE = compile_pattern(r"^\s*>", re.MULTILINE)
_EXAMPLE_FRAMING = compile_pattern(
    r"\b(this is|here is|an example of|a common|a typical)\b.{0,40}\b(prompt injection|attack|jailbreak)\b",
    re.IGNORECASE,
)


def looks_like_ocr(text: Any) -> bool:
    """Advisory: does the text look like it came from OCR / a pasted image?

    Never affects score or flagging.
    """
    if not isinstance(text, str) or not text:
        return False

    line_break_ratio = text.count("\n") / len(text)
    weird_spacing = _WEIRD_SPACING.search(text) is not None
    many_pipes_or_bullets = len(_PIPES_BULLETS.findall(text)) >= 8
    mixed_scripts = _MIXED_SCRIPTS.search(text) is not None

    return line_break_ratio > 0.02 or weird_spacing or many_pipes_or_bullets or mixed_scripts


def is_benign_context(text: Any) -> bool:
    """Does the text read like discussion of injection rather than an attempt?"""
    if not isinstance(text, str) or not text:
        return False

    meta_reference = _META_PROMPT_INJECTION.search(text) is not None
    quoted = (
        _QUOTES.search(text) is not None
        or _CODE_FENCE.search(text) is not None
        or _BLOCK_QUOTE.search(text) is not None
    )

    return (
        _EDUCATIONAL.search(text) is not None
        or meta_reference
        or _EXAMPLE_FRAMING.search(text) is not None
        or (quoted and meta_reference)
    )


def has_exfiltration_match(matches: Iterable[Match]) -> bool:
    return any(isinstance(m.id, str) and m.id.startswith(EXFILTRATION_PREFIX) for m in matches)


# ═══════════════════════════════════════════════════════════════════════════════
# Dampener
# ═══════════════════════════════════════════════════════════════════════════════


def _round_half_up(value: float) -> int:
    # half-up (x.5 -> x+1), not banker's rounding
    return int(value + 0.5)


def apply_dampening(raw_score: int, benign: bool, exfiltration_present: bool) -> int:
    if not benign or exfiltration_present:
        return raw_score
    return max(0, min(MAX_SCORE, _round_half_up(raw_score * DAMPENING_FACTOR)))


# ═══════════════════════════════════════════════════════════════════════════════
# Result assembly
# ═══════════════════════════════════════════════════════════════════════════════


def group_by_category(matches: Iterable[Match]) -> Dict[str, List[Match]]:
    categories: Dict[str, List[Match]] = {}
    for m in matches:
        categories.setdefault(m.category, []).append(m)
    return categories


def analyze(
    text: Any,
    strict_mode: bool = False,
    policy: Optional[ThresholdPolicy] = None,
    catalog: Optional[Sequence[Rule]] = None,
) -> AnalysisResult:
    """Scan text for prompt injection and classify it.

    Args:
        text: Text to scan. Anything that is not a str is treated as "".
        strict_mode: Lower flagging threshold (service variant). Ignored when
            ``policy`` is given.
        policy: Explicit threshold policy (paste-guard variant).
        catalog: Rule set to use; defaults to the built-in catalog.

    Returns:
        A fresh AnalysisResult. The engine keeps no reference to it.
    """
    source = text if isinstance(text, str) else ""
    rules = PATTERNS if catalog is None else catalog
    policy = policy if policy is not None else ThresholdPolicy.from_strict(strict_mode)

    matches = find_matches(source, rules)

    raw_score = compute_score(matches)
    benign = is_benign_context(source)
    exfiltration = has_exfiltration_match(matches)
    score = apply_dampening(raw_score, benign, exfiltration)

    threshold = policy.threshold

    return AnalysisResult(
        flagged=policy.flags(score),
        risk=risk_level(score).value,
        score=score,
        threshold=threshold,
        matches=matches,
        categories=group_by_category(matches),
        meta=AnalysisMeta(
            raw_score=raw_score,
            benign_context=benign,
            dampened=benign and not exfiltration,
            ocr_detected=looks_like_ocr(source),
            strict_mode=policy.strict,
            text_length=len(source),
            pattern_count=len(rules),
        ),
    )


__all__ = [
    "Match",
    "AnalysisMeta",
    "AnalysisResult",
    "RiskLevel",
    "normalize_text",
    "find_matches",
    "compute_score",
    "looks_like_ocr",
    "is_benign_context",
    "has_exfiltration_match",
    "apply_dampening",
    "group_by_category",
    "analyze",
]
