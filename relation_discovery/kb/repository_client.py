"""
HTTP client for the knowledge repository API.
"""

import logging
from typing import Dict, Any, List, Optional

import httpx

from ..exceptions import DuplicateRelationError, RepositoryError, RepositoryTimeoutError
from .models import DiscoveryTask, KnowledgeItem, TaskStatus

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v4/knowledge"
DEFAULT_API_URL = "http://localhost:3000"
DEFAULT_TIMEOUT = 30.0

DUPLICATE_MARKERS = ("duplicate", "unique")


def _is_duplicate_response(response: httpx.Response) -> bool:
    if response.status_code == 409:
        return True
    body = response.text.lower()
    return any(marker in body for marker in DUPLICATE_MARKERS)


def _records(data: Any, key: str) -> List[Dict[str, Any]]:
    """Return the list under ``key`` of a response body, or [] if the body has none."""
    if not isinstance(data, dict):
        logger.warning(f"Expected a JSON object with '{key}', got {type(data).__name__}")
        return []
    records = data.get(key) or []
    if not isinstance(records, list):
        logger.warning(f"Expected '{key}' to be a list, got {type(records).__name__}")
        return []
    return [record for record in records if isinstance(record, dict)]


class KnowledgeRepositoryClient:
    """Async client for knowledge items, relations and discovery tasks."""

    def __init__(self, config: Dict[str, Any], client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.api_url = (config.get("api_url") or DEFAULT_API_URL).rstrip("/")
        self.timeout = float(config.get("timeout", DEFAULT_TIMEOUT))

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        api_key = config.get("api_key")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = client or httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self.timeout,
        )

    async def __aenter__(self) -> "KnowledgeRepositoryClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            RepositoryTimeoutError: If the request exceeds the timeout.
            DuplicateRelationError: If the repository reports a uniqueness conflict.
            RepositoryError: For any other transport or HTTP failure.
        """
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RepositoryTimeoutError(
                f"{method} {path} timed out after {self.timeout}s"
            ) from e
        except httpx.RequestError as e:
            raise RepositoryError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            message = f"HTTP {response.status_code} for {method} {path}: {response.text[:200]}"
            if method != "GET" and _is_duplicate_response(response):
                raise DuplicateRelationError(message, status_code=response.status_code)
            raise RepositoryError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RepositoryError(f"Invalid JSON from {method} {path}: {e}") from e

    async def get_knowledge_item(self, knowledge_id: str) -> Optional[KnowledgeItem]:
        """Fetch a knowledge item, or None if it does not exist."""
        try:
            data = await self._request("GET", f"{API_PREFIX}/{knowledge_id}")
        except RepositoryError as e:
            if e.status_code == 404:
                return None
            raise
        if not isinstance(data, dict):
            raise RepositoryError(f"Unexpected response body for knowledge {knowledge_id}")
        return KnowledgeItem.from_dict(data)

    async def search_knowledge(
        self,
        query: str,
        mode: str = "semantic",
        limit: int = 20,
        exclude_ids: Optional[List[str]] = None,
    ) -> List[KnowledgeItem]:
        """Search knowledge items, excluding the given ids."""
        data = await self._request("POST", f"{API_PREFIX}/search", json={
            "query": query,
            "searchType": mode,
            "limit": limit,
            "filters": {"exclude_ids": list(exclude_ids or [])},
        })
        return [KnowledgeItem.from_dict(item) for item in _records(data, "results")]

    async def create_relation(
        self,
        source_id: str,
        target_id: str,
        relation_type: str,
        confidence: float,
        created_by: str,
        reasoning: str = "",
    ) -> Dict[str, Any]:
        """Create an approved relation."""
        return await self._request("POST", f"{API_PREFIX}/relations", json={
            "source_id": source_id,
            "target_id": target_id,
            "relation_type": relation_type,
            "confidence": confidence,
            "created_by": created_by,
            "reasoning": reasoning,
        })

    async def create_relation_candidate(
        self,
        source_id: str,
        target_id: str,
        relation_type: str,
        confidence: float,
        reasoning: str = "",
        status: str = "pending",
    ) -> Dict[str, Any]:
        """Create a relation candidate awaiting human review."""
        return await self._request("POST", f"{API_PREFIX}/relation-candidates", json={
            "source_id": source_id,
            "target_id": target_id,
            "relation_type": relation_type,
            "confidence": confidence,
            "reasoning": reasoning,
            "status": status,
        })

    async def list_discovery_tasks(
        self,
        status: TaskStatus = TaskStatus.PENDING,
        limit: int = 10,
    ) -> List[DiscoveryTask]:
        """List discovery tasks with the given status."""
        data = await self._request("GET", f"{API_PREFIX}/relation-discovery-tasks", params={
            "status": status.value,
            "limit": limit,
        })
        return [DiscoveryTask.from_dict(task) for task in _records(data, "tasks")]

    async def update_discovery_task(self, task_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update fields on a discovery task record."""
        return await self._request(
            "PUT", f"{API_PREFIX}/relation-discovery-tasks/{task_id}", json=fields
        )

    async def record_feedback(
        self,
        knowledge_id: str,
        feedback_type: str,
        session_id: Optional[str] = None,
        context: Optional[str] = None,
        follow_up_questions: Optional[List[str]] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """Record usage feedback for a knowledge item.

        Never raises: a failure is logged and reported as False.
        """
        try:
            await self._request("POST", f"{API_PREFIX}/feedback", json={
                "knowledge_id": knowledge_id,
                "session_id": session_id,
                "feedback_type": feedback_type,
                "context": context,
                "follow_up_questions": follow_up_questions or [],
                "notes": notes,
            })
        except RepositoryError as e:
            logger.warning(f"Failed to record feedback for {knowledge_id}: {e}")
            return False
        return True

    async def health_check(self) -> bool:
        """Check whether the repository API is reachable."""
        try:
            await self._request("GET", "/health")
        except RepositoryError as e:
            logger.warning(f"Repository health check failed: {e}")
            return False
        return True
