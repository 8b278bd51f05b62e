"""
Knowledge repository access for relation discovery.
"""

from .models import KnowledgeItem, DiscoveryTask, TaskStatus
from .repository_client import KnowledgeRepositoryClient

__all__ = ["KnowledgeItem", "DiscoveryTask", "TaskStatus", "KnowledgeRepositoryClient"]
