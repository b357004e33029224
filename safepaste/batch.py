"""
SafePaste batch scanning.

Runs the engine over a list of submitted texts. Each item is validated on its
own; a bad item yields an error entry at its index and never aborts the
batch.
"""

from __future__ import annotations

import time
from typing import Any, Optional, Sequence

from safepaste.engine.catalog import Rule
from safepaste.engine.detector import analyze
from safepaste.engine.policy import ThresholdPolicy

MAX_TEXT_LENGTH = 50_000
MAX_BATCH_ITEMS = 20


def check_text(text: Any) -> Optional[tuple[str, str]]:
    """Return ``(error_code, message)`` when text is not scannable, else None."""
    if not isinstance(text, str) or not text:
        return "invalid_item", "Item must be a non-empty string."
    if len(text) > MAX_TEXT_LENGTH:
        return "text_too_long", "Text exceeds the 50,000 character limit."
    return None


def batch_analyze(
    items: Sequence[Any],
    strict_mode: bool = False,
    policy: Optional[ThresholdPolicy] = None,
    catalog: Optional[Sequence[Rule]] = None,
) -> dict:
    """
    Scan a batch of texts.

    Args:
        items: Texts to scan, in order.
        strict_mode: Service-style strict flag (ignored when policy is given).
        policy: Explicit threshold policy.
        catalog: Rule set; defaults to the built-in catalog.

    Returns:
        dict with ``results`` (one entry per item, each with its ``index``)
        and ``meta`` (``totalItems``, ``latencyMs``).
    """
    t0 = time.perf_counter()

    results = []
    for index, text in enumerate(items):
        problem = check_text(text)
        if problem:
            error, message = problem
            results.append({"index": index, "error": error, "message": message})
            continue
        result = analyze(text, strict_mode=strict_mode, policy=policy, catalog=catalog)
        results.append({"index": index, **result.to_dict()})

    elapsed = (time.perf_counter() - t0) * 1000

    return {
        "results": results,
        "meta": {"totalItems": len(items), "latencyMs": round(elapsed, 2)},
    }
