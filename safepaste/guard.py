"""
SafePaste paste guard — decides whether a paste into an AI chat needs a warning.

This is the wrapper the browser extension runs around the engine. Settings
live in an external key-value store that is read asynchronously; if the
store is missing or fails, built-in defaults apply. The engine itself stays
synchronous.

Usage:
    decision = await check_paste(pasted_text, host="chatgpt.com", store=store)
    if decision.warn:
        show_modal(decision.result)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

from safepaste.engine.detector import AnalysisResult, analyze, normalize_text
from safepaste.engine.policy import RiskLevel, ThresholdPolicy, WarnThresholdMode

logger = logging.getLogger("safepaste.guard")

DEFAULT_SITES = (
    "chatgpt.com",
    "chat.openai.com",
    "claude.ai",
    "gemini.google.com",
    "copilot.microsoft.com",
    "chat.groq.com",
    "console.groq.com",
    "grok.com",
)


def _default_sites() -> Dict[str, bool]:
    return {host: True for host in DEFAULT_SITES}


@dataclass
class GuardSettings:
    enabled: bool = True
    strict_mode: bool = False
    warn_threshold_mode: WarnThresholdMode = WarnThresholdMode.YELLOW
    sites: Dict[str, bool] = field(default_factory=_default_sites)

    @classmethod
    def from_mapping(cls, data: Any) -> "GuardSettings":
        """Coerce a raw stored settings object, keeping defaults for bad values.

        Stored keys use the extension's camelCase names (``strictMode``,
        ``warnThresholdMode``). Stored site entries are merged over the
        default site map.
        """
        out = cls()
        if not isinstance(data, Mapping):
            return out

        if isinstance(data.get("enabled"), bool):
            out.enabled = data["enabled"]
        if isinstance(data.get("strictMode"), bool):
            out.strict_mode = data["strictMode"]

        mode = data.get("warnThresholdMode")
        if mode in {m.value for m in WarnThresholdMode}:
            out.warn_threshold_mode = WarnThresholdMode(mode)

        sites = data.get("sites")
        if isinstance(sites, Mapping):
            for host, on in sites.items():
                # only real booleans; anything else leaves the host as it was
                if isinstance(on, bool):
                    out.sites[str(host)] = on

        return out

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "strictMode": self.strict_mode,
            "warnThresholdMode": self.warn_threshold_mode.value,
            "sites": dict(self.sites),
        }

    @property
    def policy(self) -> ThresholdPolicy:
        return ThresholdPolicy(mode=self.warn_threshold_mode, strict=self.strict_mode)

    def site_enabled(self, host: str) -> bool:
        # only an explicit False disables a host
        return self.sites.get(host) is not False


class SettingsStore(Protocol):
    async def get(self) -> Mapping[str, Any]:
        ...


class MemorySettingsStore:
    """Settings store backed by a plain dict (tests, CLI, embedding)."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = dict(data or {})

    async def get(self) -> Mapping[str, Any]:
        return dict(self._data)

    async def set(self, values: Mapping[str, Any]) -> None:
        self._data.update(values)


async def resolve_settings(store: Optional[SettingsStore]) -> GuardSettings:
    """Read settings from the store, falling back to defaults on any failure."""
    if store is None:
        return GuardSettings()
    try:
        data = await store.get()
    except Exception as exc:
        logger.warning("Settings store unavailable, using defaults: %s", exc)
        return GuardSettings()
    return GuardSettings.from_mapping(data)


@dataclass
class PasteDecision:
    warn: bool
    result: AnalysisResult
    settings: GuardSettings
    normalized: str

    @property
    def level(self) -> RiskLevel:
        return RiskLevel(self.result.risk)

    @property
    def color(self) -> str:
        return self.level.color


def decide(text: Any, host: str, settings: GuardSettings) -> PasteDecision:
    """Synchronous decision once settings are known."""
    result = analyze(text, policy=settings.policy)
    active = settings.enabled and settings.site_enabled(host)
    return PasteDecision(
        warn=active and result.flagged,
        result=result,
        settings=settings,
        normalized=normalize_text(text),
    )


async def check_paste(text: Any, host: str, store: Optional[SettingsStore] = None) -> PasteDecision:
    """Resolve settings, scan the pasted text, and decide whether to warn."""
    settings = await resolve_settings(store)
    return decide(text, host, settings)
