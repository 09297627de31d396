"""Recover and validate structured records from noisy provider output.

Providers are asked for a single JSON object but routinely wrap it in prose
or code fences. ``extract_json`` digs the object out; the ``parse_*``
functions deserialize it and apply domain rules.

Two validation styles exist:
  - List shapes (entities, relationships) are filtered item by item. Items
    with a type outside the allow-list or a confidence outside ``[0, 1]`` are
    moved to a skip list and the call still succeeds.
  - Whole-record shapes (classification) fail the call on any violation.

Invalid JSON is always fatal for the call.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from enrich_core.errors import MalformedResponseError, RecordValidationError
from enrich_core.extraction.records import (
    ClassificationRecord,
    EntityEnvelope,
    EntityRecord,
    KeywordRecord,
    ParseResult,
    RelationshipEnvelope,
    RelationshipRecord,
    SkipDomain,
    SkippedRecord,
    SkipReason,
    SummaryRecord,
)
from enrich_core.extraction.taxonomy import (
    DEFAULT_CATEGORIES,
    MEMORY_TYPES,
    PRIORITIES,
    is_valid_entity_type,
    is_valid_memory_type,
    is_valid_relationship_type,
)
from enrich_core.logging import log_debug, log_info

_logger = structlog.get_logger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*")

ModelT = TypeVar("ModelT", bound=BaseModel)
ItemT = TypeVar("ItemT")
EnvelopeT = TypeVar("EnvelopeT", bound=BaseModel)


def extract_json(text: str) -> str:
    """Return the first balanced JSON object embedded in ``text``.

    Code fences are stripped first. Braces inside string literals are
    ignored and a backslash always consumes the following character. When no
    ``{`` exists, or no balanced ``}`` closes it, the fence-stripped text is
    returned unchanged so the JSON decoder reports the failure.
    """
    text = _FENCE_RE.sub("", text).strip()
    start = text.find("{")
    if start == -1:
        return text

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return text


def _summarize_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{location}: {first['msg']}"


def deserialize(raw: str, model: type[ModelT], *, shape: str) -> ModelT:
    """Extract the JSON object from ``raw`` and validate it into ``model``.

    Raises:
        MalformedResponseError: When the recovered text is not valid JSON or
            does not fit ``model``.
    """
    payload = extract_json(raw)
    try:
        return model.model_validate_json(payload)
    except ValidationError as exc:
        raise MalformedResponseError(
            shape, payload, _summarize_validation_error(exc)
        ) from exc


def _in_unit_range(value: float) -> bool:
    return 0.0 <= value <= 1.0


@dataclass(frozen=True)
class ItemRule(Generic[ItemT]):
    """Per-item validity rule for list-shaped responses.

    Attributes:
        domain: Domain reported in skip entries.
        accepts_type: Returns whether a type string is allowed.
        type_of: Returns an item's type string.
        label_of: Returns an item's identifying label.
        confidence_of: Returns an item's confidence score.
    """

    domain: SkipDomain
    accepts_type: Callable[[str], bool]
    type_of: Callable[[ItemT], str]
    label_of: Callable[[ItemT], str]
    confidence_of: Callable[[ItemT], float]

    def rejection(self, item: ItemT) -> SkipReason | None:
        """Return why ``item`` is rejected, or ``None`` when it is valid."""
        if not self.accepts_type(self.type_of(item)):
            return "unknown_type"
        if not _in_unit_range(self.confidence_of(item)):
            return "confidence_out_of_range"
        return None


def filter_items(items: Sequence[ItemT], rule: ItemRule[ItemT]) -> ParseResult[ItemT]:
    """Split ``items`` into valid ones and skip entries under ``rule``."""
    valid: list[ItemT] = []
    skipped: list[SkippedRecord] = []
    for item in items:
        reason = rule.rejection(item)
        if reason is None:
            valid.append(item)
            continue
        entry = SkippedRecord(
            domain=rule.domain,
            rejected_type=rule.type_of(item),
            identifying_name=rule.label_of(item),
            reason=reason,
        )
        log_info(
            _logger,
            "extraction.item_skipped",
            domain=entry.domain,
            rejected_type=entry.rejected_type,
            name=entry.identifying_name,
            reason=reason,
            confidence=rule.confidence_of(item),
        )
        skipped.append(entry)
    return ParseResult(valid=tuple(valid), skipped=tuple(skipped))


def parse_items(
    raw: str,
    *,
    shape: str,
    envelope: type[EnvelopeT],
    items_of: Callable[[EnvelopeT], Sequence[ItemT]],
    rule: ItemRule[ItemT],
) -> ParseResult[ItemT]:
    """Extract, deserialize and filter a list-shaped response."""
    parsed = deserialize(raw, envelope, shape=shape)
    return filter_items(items_of(parsed), rule)


def _type_check(
    allowed: Collection[str] | None, system_check: Callable[[str], bool]
) -> Callable[[str], bool]:
    if not allowed:
        return system_check
    return frozenset(allowed).__contains__


def parse_entities(
    raw: str, allowed_types: Collection[str] | None = None
) -> ParseResult[EntityRecord]:
    """Parse an entity extraction response.

    Args:
        raw: Provider output, possibly wrapped in prose or code fences.
        allowed_types: Full list of accepted entity types. ``None`` or empty
            means the system taxonomy.

    Raises:
        MalformedResponseError: When the response is not valid entity JSON.
    """
    rule: ItemRule[EntityRecord] = ItemRule(
        domain="entity",
        accepts_type=_type_check(allowed_types, is_valid_entity_type),
        type_of=lambda entity: entity.type,
        label_of=lambda entity: entity.name,
        confidence_of=lambda entity: entity.confidence,
    )
    return parse_items(
        raw,
        shape="entity",
        envelope=EntityEnvelope,
        items_of=lambda parsed: parsed.entities,
        rule=rule,
    )


def parse_relationships(
    raw: str, allowed_types: Collection[str] | None = None
) -> ParseResult[RelationshipRecord]:
    """Parse a relationship extraction response.

    Skip entries carry ``from→to`` as their identifying name.

    Raises:
        MalformedResponseError: When the response is not valid relationship JSON.
    """
    rule: ItemRule[RelationshipRecord] = ItemRule(
        domain="relationship",
        accepts_type=_type_check(allowed_types, is_valid_relationship_type),
        type_of=lambda relationship: relationship.type,
        label_of=lambda relationship: relationship.label,
        confidence_of=lambda relationship: relationship.confidence,
    )
    return parse_items(
        raw,
        shape="relationship",
        envelope=RelationshipEnvelope,
        items_of=lambda parsed: parsed.relationships,
        rule=rule,
    )


def parse_classification(
    raw: str, allowed_memory_types: Collection[str] | None = None
) -> ClassificationRecord:
    """Parse and validate a classification response as one record.

    Memory type, priority and confidence are enforced; any violation fails
    the call. Categories outside the default set are accepted.

    Raises:
        MalformedResponseError: When the response is not valid classification JSON.
        RecordValidationError: When a whole-record rule is violated.
    """
    record = deserialize(raw, ClassificationRecord, shape="classification")

    accepts_memory_type = _type_check(allowed_memory_types, is_valid_memory_type)
    if not accepts_memory_type(record.memory_type):
        choices = ", ".join(sorted(allowed_memory_types or MEMORY_TYPES))
        raise RecordValidationError(
            "memory_type",
            record.memory_type,
            f"invalid memory type: {record.memory_type} (must be one of: {choices})",
        )

    if record.priority not in PRIORITIES:
        raise RecordValidationError(
            "priority",
            record.priority,
            f"invalid priority: {record.priority} "
            f"(must be one of: {', '.join(PRIORITIES)})",
        )

    if not _in_unit_range(record.confidence):
        raise RecordValidationError(
            "confidence",
            record.confidence,
            f"invalid confidence score: {record.confidence:f} (must be 0.0-1.0)",
        )

    if record.category not in DEFAULT_CATEGORIES:
        log_debug(_logger, "extraction.custom_category", category=record.category)

    return record


def parse_summary(raw: str) -> SummaryRecord:
    """Parse a summarization response.

    Raises:
        MalformedResponseError: When the response is not valid summary JSON.
    """
    return deserialize(raw, SummaryRecord, shape="summarization")


def parse_keywords(raw: str) -> KeywordRecord:
    """Parse a keyword extraction response.

    Raises:
        MalformedResponseError: When the response is not valid keyword JSON.
    """
    return deserialize(raw, KeywordRecord, shape="keyword")
