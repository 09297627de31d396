"""Structured record extraction from text-generation responses."""

from enrich_core.extraction.parser import (
    ItemRule,
    deserialize,
    extract_json,
    filter_items,
    parse_classification,
    parse_entities,
    parse_items,
    parse_keywords,
    parse_relationships,
    parse_summary,
)
from enrich_core.extraction.records import (
    ClassificationRecord,
    EntityRecord,
    KeywordRecord,
    ParseResult,
    RelationshipRecord,
    SkippedRecord,
    SummaryRecord,
)
from enrich_core.extraction.taxonomy import (
    DEFAULT_CATEGORIES,
    ENTITY_TYPES,
    MEMORY_TYPES,
    PRIORITIES,
    RELATIONSHIP_TYPES,
    is_valid_entity_type,
    is_valid_memory_type,
    is_valid_relationship_type,
)

__all__ = [
    "DEFAULT_CATEGORIES",
    "ENTITY_TYPES",
    "MEMORY_TYPES",
    "PRIORITIES",
    "RELATIONSHIP_TYPES",
    "ClassificationRecord",
    "EntityRecord",
    "ItemRule",
    "KeywordRecord",
    "ParseResult",
    "RelationshipRecord",
    "SkippedRecord",
    "SummaryRecord",
    "deserialize",
    "extract_json",
    "filter_items",
    "is_valid_entity_type",
    "is_valid_memory_type",
    "is_valid_relationship_type",
    "parse_classification",
    "parse_entities",
    "parse_items",
    "parse_keywords",
    "parse_relationships",
    "parse_summary",
]
