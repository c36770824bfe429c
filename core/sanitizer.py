# core/sanitizer.py
"""Recover structured records from free-form LLM output.

The recovery runs in a fixed order and stops at the first stage that
produces data:

1. strip a surrounding code fence
2. slice the outermost ``[{ ... }]`` span and parse it
3. clean up trailing commas, doubled escapes and stray characters
4. parse the cleaned text
5. append missing closing braces/brackets and parse again
6. parse each balanced ``{...}`` candidate on its own
7. scrape quoted field values from the raw text with regexes

Only when the last stage also comes back empty is ``ParseFailure`` raised.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any

import structlog

from core.errors import ParseFailure

logger = structlog.get_logger(__name__)

STAGES = (
    "fence",
    "array_bounds",
    "cleanup",
    "direct_parse",
    "balance",
    "object_extraction",
    "regex_scrape",
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?\s*```$", re.DOTALL | re.IGNORECASE)
_ARRAY_START_RE = re.compile(r"\[\s*\{")
_ARRAY_END_RE = re.compile(r"\}\s*\]")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_DOUBLED_ESCAPE_RE = re.compile(r"\\\\([nrt])")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7E\n\r\t]")
_OBJECT_RE = re.compile(r"\{(?:[^{}]|\{[^{}]*\})*\}")
_STRING_VALUE = r'"((?:[^"\\]|\\.)*)"'


@dataclass(frozen=True)
class RecordShape:
    """Fields a recovered object must carry.

    ``string_fields`` lists accepted key aliases per field, canonical key
    first. ``scrape_confidence`` holds the (correct, incorrect) defaults
    used by the regex stage when the first boolean flag is present.
    """

    string_fields: tuple[tuple[str, ...], ...]
    bool_fields: tuple[str, ...] = ()
    scrape_confidence: tuple[float, float] | None = None
    scrape_reasoning: str = "Extracted from partial response"

    def matches(self, obj: Any) -> bool:
        if not isinstance(obj, dict):
            return False
        for aliases in self.string_fields:
            value = next((obj[k] for k in aliases if k in obj), None)
            if not isinstance(value, str) or not value.strip():
                return False
        return all(isinstance(obj.get(name), bool) for name in self.bool_fields)

    def scrape(self, text: str) -> list[dict[str, Any]]:
        columns: list[list[Any]] = []
        for aliases in self.string_fields:
            keys = "|".join(re.escape(k) for k in aliases)
            pattern = re.compile(rf'"(?:{keys})"\s*:\s*{_STRING_VALUE}')
            columns.append([_unescape(m) for m in pattern.findall(text)])
        for name in self.bool_fields:
            pattern = re.compile(rf'"{re.escape(name)}"\s*:\s*(true|false)')
            columns.append([m == "true" for m in pattern.findall(text)])
        if not columns:
            return []
        count = min(len(col) for col in columns)
        names = [aliases[0] for aliases in self.string_fields] + list(self.bool_fields)
        records: list[dict[str, Any]] = []
        for i in range(count):
            record = {name: col[i] for name, col in zip(names, columns)}
            if any(isinstance(v, str) and not v.strip() for v in record.values()):
                continue
            if self.scrape_confidence and self.bool_fields:
                correct, incorrect = self.scrape_confidence
                record["confidence"] = (
                    correct if record[self.bool_fields[0]] else incorrect
                )
                record["reasoning"] = self.scrape_reasoning
            records.append(record)
        return records


QA_RECORD_SHAPE = RecordShape(
    string_fields=(("question", "user"), ("answer", "model")),
    bool_fields=("isCorrect",),
    scrape_confidence=(0.8, 0.3),
)

GAP_SHAPE = RecordShape(string_fields=(("id",), ("description",), ("theme",)))


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value.replace('\\"', '"')


def _loads(text: str) -> Any:
    return json.loads(text, strict=False)


def strip_fence(text: str) -> str:
    """Remove a surrounding ```json fence if present."""
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1).strip() if match else stripped


def clean_json_text(text: str) -> str:
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", text)
    cleaned = _DOUBLED_ESCAPE_RE.sub(r"\\\1", cleaned)
    cleaned = _CONTROL_CHARS_RE.sub("", cleaned)
    cleaned = _NON_PRINTABLE_RE.sub("", cleaned)
    return cleaned.strip()


def balance_brackets(text: str) -> str:
    """Append the closing braces and brackets a truncated reply is missing."""
    missing_braces = text.count("{") - text.count("}")
    missing_brackets = text.count("[") - text.count("]")
    repaired = text.rstrip().rstrip(",")
    if missing_braces > 0:
        repaired += "}" * missing_braces
    if missing_brackets > 0:
        repaired += "]" * missing_brackets
    return repaired


def _as_list(parsed: Any) -> list[Any] | None:
    if isinstance(parsed, list):
        return parsed
    # Tolerate {"pairs": [...]} style wrappers around the array.
    if isinstance(parsed, dict):
        lists = [v for v in parsed.values() if isinstance(v, list)]
        if len(lists) == 1 and all(isinstance(i, dict) for i in lists[0]):
            return lists[0]
    return None


class ResponseSanitizer:
    """Staged JSON recovery with per-stage entry counters."""

    def __init__(self) -> None:
        self.stage_counts: Counter[str] = Counter()

    def _enter(self, stage: str) -> None:
        self.stage_counts[stage] += 1

    def sanitize(
        self, raw_text: str, shape: RecordShape = QA_RECORD_SHAPE
    ) -> list[Any]:
        raw_text = raw_text or ""

        self._enter("fence")
        text = strip_fence(raw_text)

        self._enter("array_bounds")
        start = _ARRAY_START_RE.search(text)
        ends = list(_ARRAY_END_RE.finditer(text))
        if start and ends and start.start() < ends[-1].start():
            candidate = text[start.start() : ends[-1].end()]
            try:
                parsed = _as_list(_loads(candidate))
            except json.JSONDecodeError:
                parsed = None
            if parsed is not None:
                return parsed
            logger.debug("Array span did not parse; continuing with full text.")

        self._enter("cleanup")
        cleaned = clean_json_text(text)

        self._enter("direct_parse")
        try:
            parsed = _as_list(_loads(cleaned))
            if parsed is not None:
                return parsed
        except json.JSONDecodeError:
            pass

        self._enter("balance")
        try:
            parsed = _as_list(_loads(balance_brackets(cleaned)))
            if parsed is not None:
                repaired = [item for item in parsed if shape.matches(item)]
                if repaired:
                    logger.info(
                        "Recovered %d records by closing truncated JSON.", len(repaired)
                    )
                    return repaired
        except json.JSONDecodeError:
            pass

        self._enter("object_extraction")
        extracted: list[dict[str, Any]] = []
        for match in _OBJECT_RE.finditer(cleaned):
            try:
                obj = _loads(match.group(0))
            except json.JSONDecodeError:
                continue
            if shape.matches(obj):
                extracted.append(obj)
        if extracted:
            logger.info(
                "Recovered %d records by individual object extraction.", len(extracted)
            )
            return extracted

        self._enter("regex_scrape")
        scraped = shape.scrape(raw_text)
        if scraped:
            logger.warning(
                "Recovered %d records by field scraping; reply was badly malformed.",
                len(scraped),
            )
            return scraped

        logger.error(
            "All recovery stages failed.",
            original_length=len(raw_text),
            cleaned_length=len(cleaned),
            preview=raw_text[:200],
        )
        raise ParseFailure(len(raw_text), len(cleaned))


_default_sanitizer = ResponseSanitizer()


def sanitize(raw_text: str, shape: RecordShape = QA_RECORD_SHAPE) -> list[Any]:
    """Module-level convenience wrapper around a shared sanitizer."""
    return _default_sanitizer.sanitize(raw_text, shape)


def _outer_slice(text: str, opening: str, closing: str) -> str | None:
    first = text.find(opening)
    last = text.rfind(closing)
    if first == -1 or last <= first:
        return None
    return text[first : last + 1]


def extract_json_object(raw_text: str) -> dict[str, Any]:
    """Parse the outermost JSON object from a reply."""
    text = strip_fence(raw_text or "")
    candidate = _outer_slice(text, "{", "}")
    if candidate is not None:
        for attempt in (candidate, clean_json_text(candidate)):
            try:
                parsed = _loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
    raise ParseFailure(len(raw_text or ""), len(candidate or ""))


def extract_json_array(raw_text: str) -> list[Any]:
    """Parse the outermost JSON array from a reply."""
    text = strip_fence(raw_text or "")
    candidate = _outer_slice(text, "[", "]")
    if candidate is not None:
        for attempt in (candidate, clean_json_text(candidate)):
            try:
                parsed = _loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, list):
                return parsed
    raise ParseFailure(len(raw_text or ""), len(candidate or ""))
