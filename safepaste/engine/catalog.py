"""
SafePaste — detection rule catalog.

The catalog is a flat, ordered table of declarative records. It is compiled
once into an immutable tuple of ``Rule`` objects and shared read-only by every
scan in the process.

Rule ids are namespaced ``prefix.name``. The prefix does not always equal the
category (``override.*`` rules belong to ``instruction_override``), but it is
stable and the exfiltration check keys on it.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger("safepaste.engine")


class Category(str, Enum):
    INSTRUCTION_OVERRIDE = "instruction_override"
    ROLE_HIJACKING = "role_hijacking"
    SYSTEM_PROMPT = "system_prompt"
    EXFILTRATION = "exfiltration"
    SECRECY = "secrecy"
    JAILBREAK = "jailbreak"
    OBFUSCATION = "obfuscation"
    INSTRUCTION_CHAINING = "instruction_chaining"
    META = "meta"


class CatalogError(ValueError):
    """Raised when a catalog table is structurally invalid."""


@dataclass(frozen=True)
class Rule:
    id: str
    category: str
    weight: int
    pattern: str                    # source of the matcher, kept for listing/export
    explanation: str
    matcher: Optional[re.Pattern] = None   # None when the pattern failed to compile

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "weight": self.weight,
            "explanation": self.explanation,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# Pattern dialect
# ═══════════════════════════════════════════════════════════════════════════════
#
# Catalog patterns are written in the browser regex dialect so the same table
# runs in the extension and here. Compiling with re.ASCII gives ASCII-only
# \b \w \d and case folding; whitespace, "." and multiline "^" are rewritten
# to the browser's character sets.

_JS_SPACE = r"\t\n\v\f\r \u00a0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"
_JS_LINE_BREAK = r"\n\r\u2028\u2029"


def translate_pattern(pattern: str, multiline: bool = False) -> str:
    """Rewrite browser-dialect ``\\s``, ``\\S``, ``.`` (and ``^`` when multiline)."""
    out: List[str] = []
    in_class = False
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            nxt = pattern[i + 1]
            if nxt == "s":
                out.append(_JS_SPACE if in_class else f"[{_JS_SPACE}]")
            elif nxt == "S" and not in_class:
                out.append(f"[^{_JS_SPACE}]")
            else:
                out.append(pattern[i:i + 2])
            i += 2
            continue
        if in_class:
            if ch == "]":
                in_class = False
            out.append(ch)
        elif ch == "[":
            in_class = True
            out.append(ch)
        elif ch == ".":
            out.append(f"[^{_JS_LINE_BREAK}]")
        elif ch == "^" and multiline:
            out.append(f"(?:^|(?<=[{_JS_LINE_BREAK}]))")
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def compile_pattern(pattern: str, flags: int = re.IGNORECASE) -> re.Pattern:
    """Compile a browser-dialect pattern with matching semantics."""
    multiline = bool(flags & re.MULTILINE)
    return re.compile(translate_pattern(pattern, multiline), flags | re.ASCII)


# ═══════════════════════════════════════════════════════════════════════════════
# Built-in rule table
# ═══════════════════════════════════════════════════════════════════════════════

# (id, category, weight, pattern, explanation). Every pattern is compiled
# case-insensitive; input text is never lowercased before matching.

BUILTIN_RULES: List[Tuple[str, Category, int, str, str]] = [

    # ── Instruction override ──
    ("override.ignore_previous", Category.INSTRUCTION_OVERRIDE, 35,
     r"\bignore\s+(?:(?:all|any|the|previous|prior|your)\s+){1,3}(instructions|directions|messages|rules)\b",
     "Tries to override earlier instructions."),
    ("override.disregard", Category.INSTRUCTION_OVERRIDE, 30,
     r"\b(disregard|forget)\s+(?:(?:all|any|the|previous|prior|your)\s+){1,3}(instructions|directions|messages|rules)\b",
     "Tries to make the AI ignore prior instructions."),
    ("override.from_now_on", Category.INSTRUCTION_OVERRIDE, 28,
     r"\bfrom now on\b.{0,60}\b(you (will|must|should|shall|are)|always|never|only|do not)\b",
     "Tries to permanently change AI behavior ('from now on...')."),
    ("override.new_instructions", Category.INSTRUCTION_OVERRIDE, 28,
     r"\b(new instructions|updated instructions|revised instructions|here are your (new )?instructions)\b",
     "Claims to provide replacement instructions."),
    ("override.do_not_follow", Category.INSTRUCTION_OVERRIDE, 28,
     r"\bdo not (follow|obey|listen to)\b.{0,40}\b(previous|prior|above|original|earlier|old)\b",
     "Tells the AI not to follow its original instructions."),
    ("override.respond_only", Category.INSTRUCTION_OVERRIDE, 25,
     r"\b(respond only|only respond|answer only|output only)\b.{0,30}\b(with|in|as|using)\b",
     "Tries to constrain AI output format (common in injection attacks)."),

    # ── Role hijacking ──
    ("role.hijack_system", Category.ROLE_HIJACKING, 32,
     r"\b(act as|you are now|pretend to be)\b.{0,60}\b(system|developer|administrator|root)\b",
     "Attempts to change the AI's role to something higher-privilege."),
    ("role.simulate", Category.ROLE_HIJACKING, 30,
     r"\b(simulate|emulate|roleplay|role[\s-]?play)\b.{0,40}"
     r"\b(unrestricted|uncensored|unfiltered|evil|malicious|without (rules|restrictions|limits|guidelines))\b",
     "Asks the AI to roleplay without safety restrictions."),

    # ── System prompt references ──
    ("system.prompt_reference", Category.SYSTEM_PROMPT, 40,
     r"\b(system prompt|developer message|developer instructions|hidden prompt|internal prompt)\b",
     "References system/developer instructions (often targeted by attacks)."),

    # ── Exfiltration ──
    ("exfiltrate.hidden", Category.EXFILTRATION, 40,
     r"\b(reveal|show|print|output|display)\b.{0,40}"
     r"\b(system prompt|developer message|hidden prompt|internal prompt|instructions)\b",
     "Tries to extract hidden instructions."),
    ("exfiltrate.markdown_image", Category.EXFILTRATION, 35,
     r"!\[.*?\]\(https?://[^\s)]+",
     "Contains a markdown image link that could silently send data to an external server."),
    ("exfiltrate.html_img", Category.EXFILTRATION, 35,
     r"<img\b[^>]*\bsrc\s*=\s*[\"']?https?://",
     "Contains an HTML image tag that could silently send data to an external server."),

    # ── Secrecy ──
    ("secrecy.do_not_reveal", Category.SECRECY, 22,
     r"\b(do not reveal|don't reveal|keep (this|it) secret|do not tell anyone|do not mention this)\b",
     "Asks for secrecy or hiding content."),
    ("secrecy.between_us", Category.SECRECY, 18,
     r"\b(between (you and me|us only)|this (is|stays) (confidential|private|secret|between us)|off the record)\b",
     "Uses secrecy framing that may be part of a manipulation attempt."),

    # ── Jailbreak techniques ──
    ("jailbreak.policy_bypass", Category.JAILBREAK, 28,
     r"\b(bypass|override)\b.{0,40}\b(safety|policy|policies|rules|filters)\b",
     "Attempts to bypass safety or policy rules."),
    ("jailbreak.dan", Category.JAILBREAK, 35,
     r"\b(do anything now|jailbreak(ed)?|unlocked mode|developer mode|god mode)\b",
     "References a known jailbreak technique."),

    # ── Obfuscation ──
    ("encoding.obfuscated", Category.OBFUSCATION, 22,
     r"\b(base64|rot13|hex(adecimal)?)\s*(decode|encode|decrypt|convert)\b",
     "References text encoding/decoding which may hide malicious instructions."),

    # ── Instruction chaining ──
    ("instruction_chain.follow_steps", Category.INSTRUCTION_CHAINING, 15,
     r"\bfollow (these|the) steps\b",
     "Uses step-by-step instruction chaining (sometimes used in attacks)."),

    # ── Meta ──
    ("prompt_injection.keyword", Category.META, 18,
     r"\bprompt injection\b",
     "Mentions prompt injection (can be benign, but often appears in attacks)."),
]


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog construction
# ═══════════════════════════════════════════════════════════════════════════════

_CATEGORY_VALUES = {c.value for c in Category}


def _compile(rule_id: str, pattern: Any) -> Optional[re.Pattern]:
    if not isinstance(pattern, str) or not pattern:
        logger.warning("Rule %s has no usable pattern; it will never match", rule_id)
        return None
    try:
        return compile_pattern(pattern)
    except re.error as exc:
        logger.warning("Rule %s pattern failed to compile (%s); it will never match", rule_id, exc)
        return None


def _coerce_record(entry: Any) -> Tuple[Any, Any, Any, Any, Any]:
    if isinstance(entry, Mapping):
        return (
            entry.get("id"),
            entry.get("category"),
            entry.get("weight"),
            entry.get("pattern", entry.get("match")),
            entry.get("explanation", ""),
        )
    if isinstance(entry, (tuple, list)) and len(entry) == 5:
        return tuple(entry)
    raise CatalogError(f"Unrecognised catalog entry: {entry!r}")


def build_catalog(entries: Iterable[Any]) -> Tuple[Rule, ...]:
    """Compile declarative rule records into an immutable catalog.

    Records may be 5-tuples ``(id, category, weight, pattern, explanation)``
    or mappings with those keys (``match`` is accepted as an alias for
    ``pattern``). Order is preserved.

    Raises:
        CatalogError: on duplicate ids, unknown categories, or weights that
            are not positive integers. A pattern that fails to compile is
            not an error; the rule is kept without a matcher.
    """
    rules: List[Rule] = []
    seen = set()

    for entry in entries:
        rule_id, category, weight, pattern, explanation = _coerce_record(entry)

        if not isinstance(rule_id, str) or not rule_id:
            raise CatalogError(f"Rule id must be a non-empty string, got {rule_id!r}")
        if rule_id in seen:
            raise CatalogError(f"Duplicate rule id: {rule_id}")
        seen.add(rule_id)

        category = category.value if isinstance(category, Category) else category
        if category not in _CATEGORY_VALUES:
            raise CatalogError(f"Rule {rule_id} has unknown category {category!r}")

        if isinstance(weight, bool) or not isinstance(weight, int) or weight < 1:
            raise CatalogError(f"Rule {rule_id} weight must be a positive integer, got {weight!r}")

        rules.append(Rule(
            id=rule_id,
            category=category,
            weight=weight,
            pattern=pattern if isinstance(pattern, str) else "",
            explanation=str(explanation or ""),
            matcher=_compile(rule_id, pattern),
        ))

    return tuple(rules)


def _records_from(data: Any) -> List[Any]:
    if isinstance(data, Mapping):
        data = data.get("rules", [])
    if not isinstance(data, list):
        raise CatalogError("Catalog file must hold a list of rules or a mapping with a 'rules' list")
    return data


def load_catalog_yaml(path: str) -> Tuple[Rule, ...]:
    """
    Load a catalog from a YAML file.

    Format:
        rules:
          - id: override.ignore_previous
            category: instruction_override
            weight: 35
            pattern: '\\bignore\\s+previous\\s+instructions\\b'
            explanation: "Tries to override earlier instructions."
    """
    import yaml
    with open(path) as f:
        data = yaml.safe_load(f)
    return build_catalog(_records_from(data))


def load_catalog_json(path: str) -> Tuple[Rule, ...]:
    """Load a catalog from a JSON file (same shape as the YAML format)."""
    with open(path) as f:
        data = json.load(f)
    return build_catalog(_records_from(data))


def load_catalog(path: str) -> Tuple[Rule, ...]:
    if path.endswith((".yaml", ".yml")):
        return load_catalog_yaml(path)
    return load_catalog_json(path)


PATTERNS: Tuple[Rule, ...] = build_catalog(BUILTIN_RULES)
