"""Typed records recovered from provider responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Generic, Literal, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

SkipDomain = Literal["entity", "relationship"]
SkipReason = Literal["unknown_type", "confidence_out_of_range"]

T = TypeVar("T")


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


def _none_as_empty(value: object) -> object:
    # Providers emit ``null`` for empty arrays.
    return [] if value is None else value


_StrList = Annotated[list[str], BeforeValidator(_none_as_empty)]


def _none_as_blank(value: object) -> object:
    return "" if value is None else value


def _none_as_zero(value: object) -> object:
    return 0.0 if value is None else value


# A null scalar falls back to its zero value so domain rules decide.
_Text = Annotated[str, BeforeValidator(_none_as_blank)]
_Score = Annotated[float, BeforeValidator(_none_as_zero)]


class EntityRecord(_Record):
    """One extracted entity."""

    name: _Text = ""
    type: _Text = ""
    description: str | None = None
    confidence: _Score = 0.0


class RelationshipRecord(_Record):
    """One extracted relationship between two named entities."""

    from_: _Text = Field(default="", alias="from")
    to: _Text = ""
    type: _Text = ""
    confidence: _Score = 0.0

    @property
    def label(self) -> str:
        """Return the ``from→to`` label used in skip reports."""
        return f"{self.from_}→{self.to}"


class ClassificationRecord(_Record):
    """Whole-memory classification."""

    memory_type: _Text = ""
    category: _Text = ""
    classification: str | None = None
    subcategory: str | None = None
    priority: _Text = ""
    context_labels: _StrList = Field(default_factory=list)
    tags: _StrList = Field(default_factory=list)
    confidence: _Score = 0.0


class SummaryRecord(_Record):
    """Summary text with its key points."""

    summary: _Text = ""
    key_points: _StrList = Field(default_factory=list)


class KeywordRecord(_Record):
    """Extracted keywords."""

    keywords: _StrList = Field(default_factory=list)


class EntityEnvelope(_Record):
    entities: Annotated[
        list[EntityRecord], BeforeValidator(_none_as_empty)
    ] = Field(default_factory=list)


class RelationshipEnvelope(_Record):
    relationships: Annotated[
        list[RelationshipRecord], BeforeValidator(_none_as_empty)
    ] = Field(default_factory=list)


@dataclass(frozen=True)
class SkippedRecord:
    """Audit entry for an item rejected by a domain rule.

    Attributes:
        domain: ``"entity"`` or ``"relationship"``.
        rejected_type: The item's type string.
        identifying_name: Entity name, or ``from→to`` for relationships.
        reason: Which rule rejected the item.
    """

    domain: SkipDomain
    rejected_type: str
    identifying_name: str
    reason: SkipReason = "unknown_type"


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Valid items plus the audit list of skipped ones."""

    valid: tuple[T, ...] = ()
    skipped: tuple[SkippedRecord, ...] = ()

    def __add__(self, other: ParseResult[T]) -> ParseResult[T]:
        return ParseResult(
            valid=self.valid + other.valid,
            skipped=self.skipped + other.skipped,
        )
