"""
Confidence-gated persistence of discovered relations.
"""

import logging
from typing import Dict, Any, List, Sequence

from ..config import get_threshold
from ..exceptions import DuplicateRelationError, RepositoryError
from ..kb.repository_client import KnowledgeRepositoryClient
from .models import DiscoveredRelation

logger = logging.getLogger(__name__)


class RelationPersister:
    """Commits confident relations and queues the rest for human review."""

    def __init__(self, config: Dict[str, Any], repository: KnowledgeRepositoryClient):
        self.config = config
        self.repository = repository
        self.auto_approve_threshold = get_threshold(config, "auto_approve_threshold", 0.9)
        self.provenance = config.get("provenance", "ai_inferred")

    async def _persist_one(self, relation: DiscoveredRelation):
        if relation.confidence >= self.auto_approve_threshold:
            await self.repository.create_relation(
                source_id=relation.source_id,
                target_id=relation.target_id,
                relation_type=relation.relation_type.value,
                confidence=relation.confidence,
                created_by=self.provenance,
                reasoning=relation.reasoning,
            )
        else:
            await self.repository.create_relation_candidate(
                source_id=relation.source_id,
                target_id=relation.target_id,
                relation_type=relation.relation_type.value,
                confidence=relation.confidence,
                reasoning=relation.reasoning,
                status="pending",
            )

    async def persist(self, relations: Sequence[DiscoveredRelation]) -> List[DiscoveredRelation]:
        """
        Persist each relation independently.

        Duplicates count as saved since the relation is already represented.
        Any other repository failure is logged and the relation is dropped.

        Returns:
            The relations that are now represented in the repository
        """
        saved = []
        for relation in relations:
            try:
                await self._persist_one(relation)
            except DuplicateRelationError:
                logger.debug(
                    f"Relation {relation.source_id} -[{relation.relation_type.value}]-> "
                    f"{relation.target_id} already exists"
                )
            except RepositoryError as e:
                logger.error(
                    f"Failed to save relation {relation.source_id} -> {relation.target_id}: {e}"
                )
                continue
            saved.append(relation)
        return saved
