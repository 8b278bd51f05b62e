"""
Data models for knowledge repository records.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional


@dataclass(frozen=True)
class KnowledgeItem:
    """A stored knowledge entry, read-only to the discovery pipeline."""
    id: str
    title: str
    knowledge_type: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeItem":
        known = {"id", "title", "knowledge_type", "content"}
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            knowledge_type=data.get("knowledge_type") or "",
            content=data.get("content") or "",
            metadata={k: v for k, v in data.items() if k not in known},
        )


class TaskStatus(Enum):
    """Lifecycle states of a discovery task."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DiscoveryTask:
    """A backlog request to discover relations for one knowledge item."""
    id: str
    knowledge_id: str
    status: TaskStatus
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    relations_found: Optional[int] = None
    relations_created: Optional[int] = None
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveryTask":
        return cls(
            id=str(data["id"]),
            knowledge_id=str(data["knowledge_id"]),
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            relations_found=data.get("relations_found"),
            relations_created=data.get("relations_created"),
            processing_time_ms=data.get("processing_time_ms"),
            error_message=data.get("error_message"),
        )
