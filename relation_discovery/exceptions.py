"""
Exceptions raised across the relation discovery pipeline.
"""

from typing import Optional


class RelationDiscoveryError(Exception):
    """Base exception for relation discovery errors."""


class ConfigurationError(RelationDiscoveryError):
    """Raised when settings or credentials are missing or invalid."""


class KnowledgeNotFoundError(RelationDiscoveryError):
    """Raised when a knowledge id does not resolve to an item."""

    def __init__(self, knowledge_id: str):
        self.knowledge_id = knowledge_id
        super().__init__(f"Knowledge not found: {knowledge_id}")


class RepositoryError(RelationDiscoveryError):
    """Raised when a knowledge repository call fails.

    Attributes:
        status_code: HTTP status returned by the repository, if any.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RepositoryTimeoutError(RepositoryError):
    """Raised when a repository call exceeds its timeout."""


class DuplicateRelationError(RepositoryError):
    """Raised when a relation or candidate already exists."""


class ClassificationUnavailableError(RelationDiscoveryError):
    """Raised when the classification service cannot produce an answer."""


class ClassificationTimeoutError(ClassificationUnavailableError):
    """Raised when the classification service exceeds its timeout."""
