from __future__ import annotations

ENTITY_TYPES = frozenset(
    {
        # People and organisations
        "person",
        "organization",
        "project",
        "location",
        "event",
        # Content
        "document",
        "note",
        "file",
        "url",
        "email",
        "message",
        # Knowledge
        "concept",
        "task",
        # Technical
        "repository",
        "code_snippet",
        "api",
        "database",
        "server",
        # Tooling
        "tool",
        "framework",
        "language",
        "library",
    }
)

RELATIONSHIP_TYPES = frozenset(
    {
        # Symmetric / bidirectional
        "uses",
        "used_by",
        "knows",
        "known_by",
        "works_with",
        "married_to",
        "friend_of",
        "colleague_of",
        "conflicts_with",
        "sibling_of",
        "partners_with",
        # Employment and org structure
        "employed_by",
        "employs",
        "manages",
        "managed_by",
        "reports_to",
        "leads",
        "led_by",
        "member_of",
        "has_member",
        # Ownership and creation
        "owns",
        "owned_by",
        "founded",
        "founded_by",
        "creates",
        "created_by",
        # Service and supply
        "provides",
        "provided_by",
        "contributes_to",
        # Hierarchical
        "parent_of",
        "child_of",
        "contains",
        "belongs_to",
        # Technical
        "depends_on",
        "required_by",
        "blocks",
        "blocked_by",
        "implements",
        "addresses",
        "supersedes",
        "references",
        "documents",
        "works_on",
        # Generic
        "relates_to",
    }
)

MEMORY_TYPES = frozenset(
    {
        "decision",
        "process",
        "concept",
        "event",
        "person",
        "system",
        "rule",
        "project",
        "epic",
        "phase",
        "milestone",
        "task",
        "step",
    }
)

PRIORITIES = ("Critical", "High", "Medium", "Low")

DEFAULT_CATEGORIES = frozenset(
    {
        "Architecture",
        "Security",
        "Performance",
        "Technical",
        "Business",
        "Operations",
        "Documentation",
        "Meeting",
        "Decision",
        "Software Development",
        "Project Management",
        "Business & Operations",
        "Research & Learning",
        "Personal Assistant",
        "Communication & Collaboration",
        "Other",
    }
)


def is_valid_entity_type(entity_type: str) -> bool:
    """Return whether ``entity_type`` is a system entity type (case-sensitive)."""
    return entity_type in ENTITY_TYPES


def is_valid_relationship_type(relationship_type: str) -> bool:
    """Return whether ``relationship_type`` is a system relationship type."""
    return relationship_type in RELATIONSHIP_TYPES


def is_valid_memory_type(memory_type: str) -> bool:
    """Return whether ``memory_type`` is a system memory type."""
    return memory_type in MEMORY_TYPES

