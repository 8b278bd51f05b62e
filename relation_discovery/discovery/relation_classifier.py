"""
LLM-assisted classification of the relation between two knowledge items.
"""

import logging
from typing import Dict, Any

from ..config import get_positive_int
from ..exceptions import ClassificationUnavailableError
from ..kb.models import KnowledgeItem
from ..models.llm_manager import LLMManager
from .models import RELATION_DEFINITIONS

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "...(truncated)"


class RelationClassifier:
    """Builds the pairwise classification prompt and queries the LLM."""

    def __init__(self, config: Dict[str, Any], llm_manager: LLMManager):
        self.config = config
        self.llm_manager = llm_manager
        self.excerpt_chars = get_positive_int(config, "excerpt_chars", 1000)
        self.temperature = float(config.get("temperature", 0.1))
        self.max_output_tokens = get_positive_int(config, "max_output_tokens", 200)
        self.provider = config.get("provider")

    def _excerpt(self, content: str) -> str:
        if len(content) > self.excerpt_chars:
            return content[:self.excerpt_chars] + TRUNCATION_MARKER
        return content

    def build_prompt(self, source: KnowledgeItem, target: KnowledgeItem) -> str:
        """Build the classification prompt for a (source, target) pair."""
        relation_lines = "\n".join(
            f"- {relation_type.value}: {definition}"
            for relation_type, definition in RELATION_DEFINITIONS.items()
        )

        return f"""You are a knowledge graph analyst. Analyze the relation between the two knowledge items below.

## Knowledge A
Title: {source.title}
Type: {source.knowledge_type}
Content:
{self._excerpt(source.content)}

## Knowledge B
Title: {target.title}
Type: {target.knowledge_type}
Content:
{self._excerpt(target.content)}

## Possible relation types
{relation_lines}

## Answer
Answer in JSON with:
1. relation_type: the most fitting relation type (choose from the options above)
2. confidence: a number between 0 and 1
3. reasoning: a short explanation of the relation (at most 50 characters)
4. bidirectional: whether the relation holds in both directions (boolean)

Output only the JSON object and no other text:
{{"relation_type": "...", "confidence": 0.X, "reasoning": "...", "bidirectional": true/false}}"""

    async def classify(self, source: KnowledgeItem, target: KnowledgeItem) -> str:
        """
        Ask the LLM to classify the relation from ``source`` to ``target``.

        Returns:
            The raw reply text

        Raises:
            ClassificationUnavailableError: If the service cannot produce a reply
        """
        prompt = self.build_prompt(source, target)
        try:
            return await self.llm_manager.generate(
                prompt,
                provider=self.provider,
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
            )
        except ClassificationUnavailableError:
            raise
        except Exception as e:
            raise ClassificationUnavailableError(
                f"Classification failed for {source.id} -> {target.id}: {e}"
            ) from e
