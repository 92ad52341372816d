"""Content validation run once, at memory creation.

The validator decides whether content is accepted at all, how it is
normalized, and how much it can be trusted. Low-confidence content is
accepted but quarantined; malformed content is rejected.
"""
from __future__ import annotations

import html
import json
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from memlane_core.config import ValidationConfig
from memlane_core.types import ContentFormat, SourceType

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_REPLACEMENT_CHAR = "\ufffd"
_BASE64_BLOB = re.compile(r"\b(?:[A-Za-z0-9+/]{80,}={0,2})\b")
_LONG_REPEAT = re.compile(r"(.)\1{15,}")
_URL = re.compile(r"https?://\S+", re.IGNORECASE)
_PUNCTUATION = re.compile(r"[.,;:!?()\[\]{}]")
_MARKDOWN_HINT = re.compile(
    r"(^|\n)\s{0,3}(#{1,6}\s|[-*+]\s|\d+\.\s|>|\|.+\|)|```|\[[^\]]+\]\([^)]+\)",
    re.MULTILINE,
)
_HTML_TAG = re.compile(
    r"<(?:!doctype|html|head|body|div|span|p|a|ul|ol|li|table|script|style)\b[^>]*>",
    re.IGNORECASE,
)
_HTML_STRIP = (
    re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE),
    re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE),
    re.compile(r"<!--[\s\S]*?-->"),
    re.compile(r"<[^>]+>"),
)

SOURCE_TRUST: dict[SourceType, float] = {
    SourceType.USER_INPUT: 0.95,
    SourceType.SYSTEM: 0.85,
    SourceType.TOOL_OUTPUT: 0.72,
    SourceType.WEB_SCRAPE: 0.58,
}

ANOMALY_PENALTIES: dict[str, float] = {
    "base64_blob": 0.35,
    "repeated_characters": 0.2,
    "repeated_tokens": 0.2,
    "url_spam_pattern": 0.15,
}

URL_SPAM_COUNT = 8
REPEATED_TOKEN_RATIO = 0.35
MAX_JSON_KEY_LENGTH = 256


@dataclass(frozen=True, slots=True)
class ValidationResult:
    accepted: bool
    quarantined: bool
    source_type: SourceType
    source_id: str
    normalized_content: str = ""
    normalized_content_type: str = "text"
    detected_format: ContentFormat = ContentFormat.TEXT
    confidence_score: float = 0.0
    anomaly_flags: list[str] = field(default_factory=list)
    validation_notes: list[str] = field(default_factory=list)
    rejection_reason: str | None = None


@runtime_checkable
class MemoryValidator(Protocol):
    """Pluggable content check consulted by ``LifecycleManager.create``."""

    def validate(
        self,
        content: str,
        source_type: SourceType,
        source_id: str,
        declared_content_type: str | None = None,
    ) -> ValidationResult: ...


# ── Helpers ──────────────────────────────────────────────────────────

def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def canonical_source_type(source_type: SourceType) -> SourceType:
    """Fold the six source types into the four with a trust score."""
    if source_type is SourceType.EXTERNAL:
        return SourceType.WEB_SCRAPE
    if source_type is SourceType.AGENT_INFERENCE:
        return SourceType.SYSTEM
    return source_type


def detect_content_format(content: str, declared: str | None = None) -> ContentFormat:
    if declared:
        declared = declared.strip().lower()
        if "json" in declared:
            return ContentFormat.JSON
        if "html" in declared:
            return ContentFormat.HTML
        if "markdown" in declared or declared == "md":
            return ContentFormat.MARKDOWN
        if declared == "text":
            return ContentFormat.TEXT

    trimmed = content.strip()
    if not trimmed:
        return ContentFormat.TEXT
    if (trimmed[0], trimmed[-1]) in {("{", "}"), ("[", "]")}:
        return ContentFormat.JSON
    if _HTML_TAG.search(trimmed):
        return ContentFormat.HTML
    if _MARKDOWN_HINT.search(trimmed):
        return ContentFormat.MARKDOWN
    return ContentFormat.TEXT


def has_encoding_artifacts(content: str) -> bool:
    return bool(_CONTROL_CHARS.search(content)) or _REPLACEMENT_CHAR in content


def html_to_text(content: str) -> str:
    for pattern in _HTML_STRIP:
        content = pattern.sub(" ", content)
    return re.sub(r"\s+", " ", html.unescape(content)).strip()


def normalize_markdown(content: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", content.replace("\r\n", "\n")).strip()


def _tokens(content: str) -> list[str]:
    return content.lower().split()


def anomaly_flags(content: str) -> list[str]:
    flags: list[str] = []
    if _BASE64_BLOB.search(content):
        flags.append("base64_blob")
    if _LONG_REPEAT.search(content):
        flags.append("repeated_characters")
    if len(_URL.findall(content)) >= URL_SPAM_COUNT:
        flags.append("url_spam_pattern")

    tokens = _tokens(content)
    if len(tokens) >= 12:
        top = Counter(tokens).most_common(1)[0][1]
        if top / len(tokens) >= REPEATED_TOKEN_RATIO:
            flags.append("repeated_tokens")
    return flags


def _complexity(content: str) -> tuple[float, float]:
    """Return (complexity score, length/complexity penalty)."""
    tokens = _tokens(content)
    if not tokens:
        return 0.0, 0.3

    unique = len(set(tokens))
    unique_ratio = unique / len(tokens)
    punctuation_ratio = len(_PUNCTUATION.findall(content)) / max(1, len(content))
    normalized_length = min(1.0, math.log10(len(content) + 10) / 4)

    score = (
        unique_ratio * 0.65
        + normalized_length * 0.25
        + min(1.0, punctuation_ratio * 20) * 0.1
    )
    if len(tokens) < 5:
        score -= 0.1

    # Long content made of few distinct words is padding.
    ratio = len(content) / max(1, unique * 12)
    penalty = _clamp((ratio - 1.5) / 4.5) * 0.3 if ratio > 1.5 else 0.0
    return _clamp(score), penalty


def confidence_score(source_type: SourceType, content: str) -> tuple[float, list[str]]:
    """Trust-weighted confidence minus anomaly and padding penalties."""
    flags = anomaly_flags(content)
    complexity, length_penalty = _complexity(content)
    anomaly_penalty = sum(ANOMALY_PENALTIES.get(flag, 0.0) for flag in flags)
    trust = SOURCE_TRUST[canonical_source_type(source_type)]
    score = _clamp(trust * 0.6 + complexity * 0.4 - anomaly_penalty - length_penalty)
    return score, flags


def _check_json_structure(payload: Any, config: ValidationConfig) -> str | None:
    if not isinstance(payload, dict | list):
        return "Structured tool output must be a JSON object or array"

    nodes = 0
    keys = 0

    def walk(value: Any, depth: int) -> str | None:
        nonlocal nodes, keys
        if depth > config.max_json_depth:
            return f"JSON depth exceeds limit ({config.max_json_depth})"
        nodes += 1
        if nodes > config.max_json_nodes:
            return f"JSON node count exceeds limit ({config.max_json_nodes})"

        if isinstance(value, list):
            if len(value) > config.max_json_array_items:
                return f"JSON array size exceeds limit ({config.max_json_array_items})"
            for item in value:
                if issue := walk(item, depth + 1):
                    return issue
            return None

        if isinstance(value, dict):
            keys += len(value)
            if keys > config.max_json_keys:
                return f"JSON key count exceeds limit ({config.max_json_keys})"
            for key, item in value.items():
                if not key.strip():
                    return "JSON contains an empty key"
                if len(key) > MAX_JSON_KEY_LENGTH:
                    return "JSON contains an oversized key"
                if has_encoding_artifacts(key):
                    return "JSON key contains encoding artifacts"
                if issue := walk(item, depth + 1):
                    return issue
            return None

        if isinstance(value, str) and len(value) > config.max_json_string_length:
            return f"JSON string field exceeds limit ({config.max_json_string_length})"
        return None

    return walk(payload, 1)


# ── Validator ────────────────────────────────────────────────────────

class HeuristicMemoryValidator:
    """Format detection, normalization and trust scoring without a model.

    JSON from tool output or web scrapes is held to structural limits;
    HTML is reduced to plain text; markdown is whitespace-normalized.
    Oversized text is truncated, oversized JSON is rejected. Content whose
    confidence falls below ``quarantine_threshold`` is quarantined.
    """

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self._config = config or ValidationConfig()

    def validate(
        self,
        content: str,
        source_type: SourceType,
        source_id: str,
        declared_content_type: str | None = None,
    ) -> ValidationResult:
        canonical = canonical_source_type(source_type)

        def reject(reason: str) -> ValidationResult:
            return ValidationResult(
                accepted=False,
                quarantined=False,
                source_type=canonical,
                source_id=source_id,
                rejection_reason=reason,
            )

        if not isinstance(content, str):
            return reject("Memory content must be a string")

        text = content.replace("\r\n", "\n")
        if not text.strip():
            return reject("Memory content is empty")
        if has_encoding_artifacts(text):
            return reject("Memory content contains encoding artifacts")

        notes: list[str] = []
        detected = detect_content_format(text, declared_content_type)

        if detected is ContentFormat.JSON:
            try:
                parsed = json.loads(text)
            except RecursionError:
                return reject("JSON nesting is too deep")
            except ValueError:
                return reject("Invalid JSON payload")
            if canonical in (SourceType.TOOL_OUTPUT, SourceType.WEB_SCRAPE):
                if issue := _check_json_structure(parsed, self._config):
                    return reject(issue)
                notes.append("Structured output schema validated")
            try:
                text = json.dumps(parsed, separators=(",", ":"), ensure_ascii=False)
            except RecursionError:
                return reject("JSON nesting is too deep")
            content_type = "json"
        elif detected is ContentFormat.HTML:
            text = html_to_text(text)
            content_type = "text"
            notes.append("HTML sanitized to plain text")
        elif detected is ContentFormat.MARKDOWN:
            text = normalize_markdown(text)
            content_type = "markdown"
            notes.append("Markdown normalized")
        else:
            text = text.strip()
            content_type = "text"

        if not text.strip():
            return reject("Memory content is empty after normalization")
        if has_encoding_artifacts(text):
            return reject("Memory content contains encoding artifacts after normalization")

        limit = self._config.max_entry_length
        if len(text) > limit:
            if content_type == "json":
                return reject(f"JSON memory exceeds max length ({limit})")
            text = text[:limit]
            notes.append(f"Content truncated to {limit} chars")

        score, flags = confidence_score(canonical, text)
        return ValidationResult(
            accepted=True,
            quarantined=score < self._config.quarantine_threshold,
            source_type=canonical,
            source_id=source_id,
            normalized_content=text,
            normalized_content_type=content_type,
            detected_format=detected,
            confidence_score=score,
            anomaly_flags=flags,
            validation_notes=notes,
        )
