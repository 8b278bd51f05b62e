"""
Batch processing of pending relation discovery tasks.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from ..config import get_positive_int
from ..exceptions import RepositoryError
from ..kb.models import DiscoveryTask, TaskStatus
from ..kb.repository_client import KnowledgeRepositoryClient
from .discovery_service import RelationDiscoveryService
from .models import TaskOutcome

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DiscoveryTaskProcessor:
    """Drives pending discovery tasks through pending -> processing -> completed | failed."""

    def __init__(
        self,
        config: Dict[str, Any],
        repository: KnowledgeRepositoryClient,
        discovery_service: RelationDiscoveryService,
    ):
        self.config = config
        self.repository = repository
        self.discovery_service = discovery_service
        self.batch_limit = get_positive_int(config, "batch_limit", 10)

    async def process_pending_tasks(self, limit: Optional[int] = None) -> List[TaskOutcome]:
        """
        Process up to ``limit`` pending tasks, one at a time.

        A failing task is marked failed and does not stop the batch.
        Failed tasks are not retried here.

        Args:
            limit: Maximum number of tasks to pull, defaults to the configured limit

        Returns:
            One outcome per task pulled, in order
        """
        limit = self.batch_limit if limit is None else limit
        if limit <= 0:
            raise ValueError(f"Batch limit must be positive, got {limit}")

        tasks = await self.repository.list_discovery_tasks(TaskStatus.PENDING, limit)
        logger.info(f"Processing {len(tasks)} pending discovery tasks")

        outcomes = []
        for task in tasks[:limit]:
            outcomes.append(await self.process_task(task))

        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        logger.info(f"Discovery batch finished: {len(outcomes) - failed} completed, {failed} failed")
        return outcomes

    async def process_task(self, task: DiscoveryTask) -> TaskOutcome:
        """Run discovery for one task and record the outcome on its record."""
        start_time = time.monotonic()
        try:
            await self.repository.update_discovery_task(task.id, {
                "status": TaskStatus.PROCESSING.value,
                "started_at": _now(),
            })

            result = await self.discovery_service.discover_relations_for_knowledge(task.knowledge_id)
            elapsed_ms = int((time.monotonic() - start_time) * 1000)

            await self.repository.update_discovery_task(task.id, {
                "status": TaskStatus.COMPLETED.value,
                "completed_at": _now(),
                "relations_found": result.relations_found,
                "relations_created": result.relations_saved,
                "processing_time_ms": elapsed_ms,
            })
            return TaskOutcome(
                task_id=task.id,
                knowledge_id=task.knowledge_id,
                status=TaskStatus.COMPLETED,
                result=result,
                processing_time_ms=elapsed_ms,
            )
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            error_message = str(e) or type(e).__name__
            logger.error(f"Discovery task {task.id} for {task.knowledge_id} failed: {error_message}")
            await self._mark_failed(task, error_message)
            return TaskOutcome(
                task_id=task.id,
                knowledge_id=task.knowledge_id,
                status=TaskStatus.FAILED,
                error=error_message,
                processing_time_ms=elapsed_ms,
            )

    async def _mark_failed(self, task: DiscoveryTask, error_message: str):
        try:
            await self.repository.update_discovery_task(task.id, {
                "status": TaskStatus.FAILED.value,
                "completed_at": _now(),
                "error_message": error_message,
            })
        except RepositoryError as e:
            logger.error(f"Could not mark discovery task {task.id} as failed: {e}")
