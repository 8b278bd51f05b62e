"""
Candidate retrieval for relation discovery.
"""

import logging
from typing import Dict, Any, List, Optional

from ..config import get_positive_int
from ..kb.models import KnowledgeItem
from ..kb.repository_client import KnowledgeRepositoryClient

logger = logging.getLogger(__name__)


class CandidateFinder:
    """Finds knowledge items semantically similar to a target item."""

    def __init__(self, config: Dict[str, Any], repository: KnowledgeRepositoryClient):
        self.config = config
        self.repository = repository
        self.candidate_limit = get_positive_int(config, "candidate_limit", 20)
        self.query_content_chars = get_positive_int(config, "query_content_chars", 500)
        self.search_mode = config.get("search_mode", "semantic")

    def build_query(self, target: KnowledgeItem) -> str:
        """Seed the similarity query with the title and a bounded content prefix."""
        return f"{target.title} {target.content[:self.query_content_chars]}".strip()

    async def find_candidates(
        self,
        target: KnowledgeItem,
        limit: Optional[int] = None,
    ) -> List[KnowledgeItem]:
        """
        Retrieve up to ``limit`` items similar to ``target``, never including it.

        Args:
            target: The fully loaded knowledge item to find relations for
            limit: Maximum number of candidates, defaults to the configured limit

        Returns:
            Candidate knowledge items, possibly empty
        """
        limit = self.candidate_limit if limit is None else limit
        if limit <= 0:
            raise ValueError(f"Candidate limit must be positive, got {limit}")

        results = await self.repository.search_knowledge(
            self.build_query(target),
            mode=self.search_mode,
            limit=limit,
            exclude_ids=[target.id],
        )
        candidates = [item for item in results if item.id != target.id][:limit]

        if not candidates:
            logger.info(f"No candidates found for knowledge {target.id}")
        else:
            logger.debug(f"Found {len(candidates)} candidates for knowledge {target.id}")
        return candidates
