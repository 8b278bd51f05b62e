"""
Relation discovery for a single knowledge item.
"""

import logging
from typing import Dict, Any, Optional

from ..config import get_threshold
from ..exceptions import ClassificationUnavailableError, KnowledgeNotFoundError
from ..kb.models import KnowledgeItem
from ..kb.repository_client import KnowledgeRepositoryClient
from ..models.llm_manager import LLMManager
from .candidate_finder import CandidateFinder
from .models import DiscoveredRelation, DiscoveryResult
from .relation_classifier import RelationClassifier
from .relation_persister import RelationPersister
from .response_parser import ClassificationParser

logger = logging.getLogger(__name__)


class RelationDiscoveryService:
    """Finds, classifies and persists relations for one knowledge item at a time."""

    def __init__(
        self,
        config: Dict[str, Any],
        repository: KnowledgeRepositoryClient,
        llm_manager: LLMManager,
    ):
        self.config = config
        self.repository = repository
        self.min_confidence = get_threshold(config, "min_confidence", 0.5)

        self.candidate_finder = CandidateFinder(config, repository)
        self.classifier = RelationClassifier(config, llm_manager)
        self.parser = ClassificationParser()
        self.persister = RelationPersister(config, repository)

    async def analyze_relation(
        self,
        source: KnowledgeItem,
        target: KnowledgeItem,
    ) -> Optional[DiscoveredRelation]:
        """Classify one pair; an unavailable classifier yields None."""
        try:
            raw = await self.classifier.classify(source, target)
        except ClassificationUnavailableError as e:
            logger.warning(f"Classification unavailable for {source.id} -> {target.id}: {e}")
            return None
        return self.parser.parse(raw, source.id, target.id)

    async def discover_relations_for_knowledge(self, knowledge_id: str) -> DiscoveryResult:
        """
        Discover and persist relations from one knowledge item to similar items.

        Args:
            knowledge_id: Id of the knowledge item to analyze

        Returns:
            DiscoveryResult with candidate and relation counts

        Raises:
            KnowledgeNotFoundError: If the id does not resolve to an item
        """
        target = await self.repository.get_knowledge_item(knowledge_id)
        if target is None:
            raise KnowledgeNotFoundError(knowledge_id)

        candidates = await self.candidate_finder.find_candidates(target)

        discovered = []
        for candidate in candidates:
            if candidate.id == target.id:
                continue
            relation = await self.analyze_relation(target, candidate)
            if relation is not None and relation.confidence >= self.min_confidence:
                discovered.append(relation)

        saved = await self.persister.persist(discovered)

        result = DiscoveryResult(
            knowledge_id=knowledge_id,
            candidates_analyzed=len(candidates),
            relations_found=len(discovered),
            relations_saved=len(saved),
        )
        logger.info(
            f"Discovery for {knowledge_id}: {result.candidates_analyzed} candidates, "
            f"{result.relations_found} found, {result.relations_saved} saved"
        )
        return result
