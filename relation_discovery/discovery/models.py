"""
Data models for the relation discovery pipeline.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Any, Optional

from ..kb.models import TaskStatus


class RelationType(Enum):
    """Closed set of relation kinds the classifier may answer with."""
    REQUIRES = "requires"
    EXTENDS = "extends"
    CONTRADICTS = "contradicts"
    SUPERSEDES = "supersedes"
    EXAMPLE_OF = "example_of"
    PART_OF = "part_of"
    RELATED = "related"
    ANSWERS = "answers"
    NONE = "none"


RELATION_DEFINITIONS = {
    RelationType.REQUIRES: "A requires understanding B first (B is a prerequisite of A)",
    RelationType.EXTENDS: "A extends B or explains it in more depth",
    RelationType.CONTRADICTS: "A contradicts or conflicts with B",
    RelationType.SUPERSEDES: "A supersedes B (B is outdated)",
    RelationType.EXAMPLE_OF: "A is a concrete example of B",
    RelationType.PART_OF: "A is a part of B",
    RelationType.RELATED: "A is related to B with no more specific relation",
    RelationType.ANSWERS: "A answers a question raised by B",
    RelationType.NONE: "no meaningful relation",
}


@dataclass(frozen=True)
class DiscoveredRelation:
    """A classified relation between two knowledge items."""
    source_id: str
    target_id: str
    relation_type: RelationType
    confidence: float
    reasoning: str = ""
    bidirectional: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["relation_type"] = self.relation_type.value
        return data


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing a classifier reply.

    A valid result carries a relation, or None when the classifier answered
    "none". An invalid result carries the reason instead.
    """
    relation: Optional[DiscoveredRelation] = None
    invalid_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.invalid_reason is None

    @classmethod
    def valid(cls, relation: Optional[DiscoveredRelation]) -> "ParseResult":
        return cls(relation=relation)

    @classmethod
    def invalid(cls, reason: str) -> "ParseResult":
        return cls(invalid_reason=reason)


@dataclass
class DiscoveryResult:
    """Aggregate counts of one discovery run."""
    knowledge_id: str
    candidates_analyzed: int
    relations_found: int
    relations_saved: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TaskOutcome:
    """Outcome of processing one discovery task."""
    task_id: str
    knowledge_id: str
    status: TaskStatus
    result: Optional[DiscoveryResult] = None
    error: Optional[str] = None
    processing_time_ms: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "task_id": self.task_id,
            "knowledge_id": self.knowledge_id,
            "status": self.status.value,
            "processing_time_ms": self.processing_time_ms,
        }
        if self.result is not None:
            data.update(self.result.to_dict())
        if self.error is not None:
            data["error"] = self.error
        return data
