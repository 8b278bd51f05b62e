"""
Relation discovery pipeline: candidates, classification, persistence and task processing.
"""

from .models import (
    RelationType,
    DiscoveredRelation,
    ParseResult,
    DiscoveryResult,
    TaskOutcome,
)
from .candidate_finder import CandidateFinder
from .relation_classifier import RelationClassifier
from .response_parser import ClassificationParser
from .relation_persister import RelationPersister
from .discovery_service import RelationDiscoveryService
from .task_processor import DiscoveryTaskProcessor

__all__ = [
    "RelationType",
    "DiscoveredRelation",
    "ParseResult",
    "DiscoveryResult",
    "TaskOutcome",
    "CandidateFinder",
    "RelationClassifier",
    "ClassificationParser",
    "RelationPersister",
    "RelationDiscoveryService",
    "DiscoveryTaskProcessor",
]
