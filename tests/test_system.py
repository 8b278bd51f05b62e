"""
Tests for the knowledge relation discovery pipeline.
"""

import json
import pytest
from unittest.mock import Mock, AsyncMock

# Add project root to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relation_discovery.exceptions import (
    ClassificationUnavailableError,
    DuplicateRelationError,
    KnowledgeNotFoundError,
    RepositoryError,
)
from relation_discovery.kb.models import DiscoveryTask, KnowledgeItem, TaskStatus
from relation_discovery.kb.repository_client import KnowledgeRepositoryClient
from relation_discovery.models.llm_manager import LLMManager
from relation_discovery.discovery.models import (
    DiscoveredRelation,
    DiscoveryResult,
    RelationType,
    TaskOutcome,
)
from relation_discovery.discovery.candidate_finder import CandidateFinder
from relation_discovery.discovery.relation_classifier import RelationClassifier, TRUNCATION_MARKER
from relation_discovery.discovery.response_parser import ClassificationParser, extract_json_object
from relation_discovery.discovery.relation_persister import RelationPersister
from relation_discovery.discovery.discovery_service import RelationDiscoveryService
from relation_discovery.discovery.task_processor import DiscoveryTaskProcessor


def reply(relation_type, confidence, reasoning="short reason", bidirectional=False):
    return json.dumps({
        "relation_type": relation_type,
        "confidence": confidence,
        "reasoning": reasoning,
        "bidirectional": bidirectional,
    })


def make_repository():
    repository = Mock(spec=KnowledgeRepositoryClient)
    repository.get_knowledge_item = AsyncMock()
    repository.search_knowledge = AsyncMock(return_value=[])
    repository.create_relation = AsyncMock(return_value={})
    repository.create_relation_candidate = AsyncMock(return_value={})
    repository.list_discovery_tasks = AsyncMock(return_value=[])
    repository.update_discovery_task = AsyncMock(return_value={})
    return repository


@pytest.fixture
def target():
    return KnowledgeItem(
        id="kn-1",
        title="Refund Policy",
        knowledge_type="policy",
        content="Customers may request a refund within 30 days of purchase.",
    )


@pytest.fixture
def discovery_config():
    return {
        "candidate_limit": 20,
        "query_content_chars": 500,
        "excerpt_chars": 1000,
        "min_confidence": 0.5,
        "auto_approve_threshold": 0.9,
        "temperature": 0.1,
        "max_output_tokens": 200,
    }


class TestClassificationParser:
    """Test extraction and validation of classifier replies."""

    @pytest.fixture
    def parser(self):
        return ClassificationParser()

    def test_parse_reply_wrapped_in_prose(self, parser):
        """Test that the object is found inside surrounding text."""
        raw = "Sure! Here is my answer:\n" + reply("extends", 0.7, "adds detail", True) + "\nHope it helps."
        relation = parser.parse(raw, "a", "b")

        assert relation == DiscoveredRelation(
            source_id="a",
            target_id="b",
            relation_type=RelationType.EXTENDS,
            confidence=0.7,
            reasoning="adds detail",
            bidirectional=True,
        )

    def test_extract_first_balanced_object(self):
        """Test that braces inside strings do not end the object early."""
        raw = 'prefix {"reasoning": "uses {braces}", "n": {"x": 1}} trailing {"other": 2}'
        assert extract_json_object(raw) == '{"reasoning": "uses {braces}", "n": {"x": 1}}'

    def test_no_object_returns_none(self, parser):
        """Test that a reply without JSON yields None instead of raising."""
        assert parser.parse("I cannot decide.", "a", "b") is None
        assert extract_json_object('{"unterminated": 1') is None

        result = parser.interpret("I cannot decide.", "a", "b")
        assert not result.ok
        assert result.relation is None

    def test_malformed_json_returns_none(self, parser):
        """Test that an undecodable object is treated as invalid."""
        result = parser.interpret("{relation_type: extends}", "a", "b")
        assert not result.ok
        assert parser.parse("{relation_type: extends}", "a", "b") is None

    @pytest.mark.parametrize("payload", [
        {"confidence": 0.8},
        {"relation_type": "extends"},
        {"relation_type": "", "confidence": 0.8},
        {"relation_type": "extends", "confidence": None},
    ])
    def test_missing_required_fields(self, parser, payload):
        """Test that relation_type and confidence are required."""
        assert parser.parse(json.dumps(payload), "a", "b") is None

    def test_none_relation_is_valid_but_empty(self, parser):
        """Test that the "none" answer yields no relation."""
        result = parser.interpret(reply("none", 0.95), "a", "b")
        assert result.ok
        assert result.relation is None
        assert parser.parse(reply("none", 0.95), "a", "b") is None

    def test_unknown_relation_type_is_invalid(self, parser):
        """Test that relation types outside the enumeration are rejected."""
        result = parser.interpret(reply("cousin_of", 0.9), "a", "b")
        assert not result.ok
        assert "cousin_of" in result.invalid_reason

    def test_relation_type_is_normalized(self, parser):
        """Test that relation types are matched case-insensitively."""
        relation = parser.parse(reply(" Part_Of ", 0.6), "a", "b")
        assert relation.relation_type is RelationType.PART_OF

    @pytest.mark.parametrize("raw_confidence,expected", [
        (1.7, 1.0),
        (-0.3, 0.0),
        ("0.8", 0.8),
        (1, 1.0),
    ])
    def test_confidence_is_clamped(self, parser, raw_confidence, expected):
        """Test that confidence always ends up in [0, 1]."""
        relation = parser.parse(reply("related", raw_confidence), "a", "b")
        assert relation.confidence == pytest.approx(expected)
        assert 0.0 <= relation.confidence <= 1.0

    @pytest.mark.parametrize("raw_confidence", ["high", True, [0.5]])
    def test_non_numeric_confidence_is_invalid(self, parser, raw_confidence):
        """Test that non-numeric confidence never reaches a relation."""
        assert parser.parse(reply("related", raw_confidence), "a", "b") is None

    @pytest.mark.parametrize("digits", [400, 5000])
    def test_oversized_integer_confidence_is_invalid(self, parser, digits):
        """Test that integer confidences too large for a float are rejected."""
        raw = '{"relation_type": "related", "confidence": 1' + "0" * digits + "}"

        result = parser.interpret(raw, "a", "b")

        assert not result.ok
        assert result.relation is None
        assert parser.parse(raw, "a", "b") is None

    def test_optional_fields_default(self, parser):
        """Test defaults for reasoning and bidirectional."""
        raw = json.dumps({"relation_type": "requires", "confidence": 0.6})
        relation = parser.parse(raw, "a", "b")

        assert relation.reasoning == ""
        assert relation.bidirectional is False


class TestRelationClassifier:
    """Test prompt construction and classification calls."""

    @pytest.fixture
    def llm_manager(self):
        manager = Mock(spec=LLMManager)
        manager.generate = AsyncMock(return_value=reply("related", 0.6))
        return manager

    @pytest.fixture
    def classifier(self, discovery_config, llm_manager):
        return RelationClassifier(discovery_config, llm_manager)

    def test_prompt_contents(self, classifier, target):
        """Test that the prompt describes both items and every relation kind."""
        candidate = KnowledgeItem("kn-2", "FAQ: Refunds", "faq", "How do refunds work?")
        prompt = classifier.build_prompt(target, candidate)

        assert "Title: Refund Policy" in prompt
        assert "Type: policy" in prompt
        assert "Title: FAQ: Refunds" in prompt
        assert "Type: faq" in prompt
        for relation_type in RelationType:
            assert f"- {relation_type.value}:" in prompt
        assert TRUNCATION_MARKER not in prompt
        assert '{"relation_type": "...", "confidence": 0.X' in prompt

    def test_prompt_is_deterministic(self, classifier, target):
        """Test that the same pair always yields the same prompt."""
        candidate = KnowledgeItem("kn-2", "FAQ: Refunds", "faq", "How do refunds work?")
        assert classifier.build_prompt(target, candidate) == classifier.build_prompt(target, candidate)

    def test_long_content_is_truncated(self, classifier, target):
        """Test that content past the excerpt budget is cut with a marker."""
        long_item = KnowledgeItem("kn-3", "Handbook", "guide", "x" * 1500)
        prompt = classifier.build_prompt(long_item, target)

        assert "x" * 1000 + TRUNCATION_MARKER in prompt
        assert "x" * 1001 not in prompt

    @pytest.mark.asyncio
    async def test_classify_uses_low_temperature(self, classifier, llm_manager, target):
        """Test generation parameters passed to the LLM."""
        candidate = KnowledgeItem("kn-2", "FAQ: Refunds", "faq", "How do refunds work?")
        raw = await classifier.classify(target, candidate)

        assert raw == reply("related", 0.6)
        kwargs = llm_manager.generate.call_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 200

    @pytest.mark.asyncio
    async def test_classify_wraps_unexpected_errors(self, classifier, llm_manager, target):
        """Test that provider failures surface as ClassificationUnavailableError."""
        llm_manager.generate = AsyncMock(side_effect=RuntimeError("boom"))
        candidate = KnowledgeItem("kn-2", "FAQ: Refunds", "faq", "")

        with pytest.raises(ClassificationUnavailableError):
            await classifier.classify(target, candidate)


class TestCandidateFinder:
    """Test candidate retrieval."""

    @pytest.fixture
    def repository(self):
        return make_repository()

    @pytest.fixture
    def finder(self, discovery_config, repository):
        return CandidateFinder(discovery_config, repository)

    @pytest.mark.asyncio
    async def test_query_and_exclusion(self, finder, repository):
        """Test the seeded query and that the target is excluded."""
        target = KnowledgeItem("kn-1", "Refund Policy", "policy", "y" * 800)
        other = KnowledgeItem("kn-2", "FAQ: Refunds", "faq", "")
        repository.search_knowledge.return_value = [target, other]

        candidates = await finder.find_candidates(target, limit=5)

        assert candidates == [other]
        args, kwargs = repository.search_knowledge.call_args
        assert args[0] == "Refund Policy " + "y" * 500
        assert kwargs["mode"] == "semantic"
        assert kwargs["limit"] == 5
        assert kwargs["exclude_ids"] == ["kn-1"]

    @pytest.mark.asyncio
    async def test_empty_results(self, finder, target):
        """Test that no candidates is not an error."""
        assert await finder.find_candidates(target) == []

    @pytest.mark.asyncio
    async def test_limit_must_be_positive(self, finder, target):
        with pytest.raises(ValueError):
            await finder.find_candidates(target, limit=0)


class TestRelationPersister:
    """Test confidence-gated persistence."""

    @pytest.fixture
    def repository(self):
        return make_repository()

    @pytest.fixture
    def persister(self, discovery_config, repository):
        return RelationPersister(discovery_config, repository)

    @pytest.mark.asyncio
    async def test_threshold_boundary(self, persister, repository):
        """Test that 0.9 is approved and 0.8999 becomes a candidate."""
        approved = DiscoveredRelation("a", "b", RelationType.SUPERSEDES, 0.9, "newer version")
        pending = DiscoveredRelation("a", "c", RelationType.RELATED, 0.8999, "same topic")

        saved = await persister.persist([approved, pending])

        assert saved == [approved, pending]
        repository.create_relation.assert_awaited_once_with(
            source_id="a",
            target_id="b",
            relation_type="supersedes",
            confidence=0.9,
            created_by="ai_inferred",
            reasoning="newer version",
        )
        repository.create_relation_candidate.assert_awaited_once_with(
            source_id="a",
            target_id="c",
            relation_type="related",
            confidence=0.8999,
            reasoning="same topic",
            status="pending",
        )

    @pytest.mark.asyncio
    async def test_duplicates_count_as_saved(self, persister, repository):
        """Test that a duplicate conflict is treated as success."""
        repository.create_relation_candidate.side_effect = DuplicateRelationError("exists", 409)
        relation = DiscoveredRelation("a", "b", RelationType.RELATED, 0.6)

        assert await persister.persist([relation]) == [relation]

    @pytest.mark.asyncio
    async def test_other_failures_are_isolated(self, persister, repository):
        """Test that one failing relation does not stop the rest."""
        repository.create_relation_candidate.side_effect = [
            RepositoryError("server error", 500),
            {},
        ]
        failing = DiscoveredRelation("a", "b", RelationType.RELATED, 0.6)
        succeeding = DiscoveredRelation("a", "c", RelationType.EXTENDS, 0.7)

        saved = await persister.persist([failing, succeeding])

        assert saved == [succeeding]
        assert repository.create_relation_candidate.await_count == 2


class TestRelationDiscoveryService:
    """Test per-item discovery runs."""

    @pytest.fixture
    def repository(self, target):
        repository = make_repository()
        repository.get_knowledge_item.return_value = target
        return repository

    @pytest.fixture
    def llm_manager(self):
        manager = Mock(spec=LLMManager)
        manager.generate = AsyncMock(return_value=reply("none", 0.9))
        return manager

    @pytest.fixture
    def service(self, discovery_config, repository, llm_manager):
        return RelationDiscoveryService(discovery_config, repository, llm_manager)

    @pytest.mark.asyncio
    async def test_unknown_knowledge_fails_fast(self, service, repository, llm_manager):
        """Test that a missing target raises KnowledgeNotFoundError."""
        repository.get_knowledge_item.return_value = None

        with pytest.raises(KnowledgeNotFoundError):
            await service.discover_relations_for_knowledge("missing")
        repository.search_knowledge.assert_not_awaited()
        llm_manager.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refund_policy_scenario(self, service, repository, llm_manager):
        """Test one auto-approved and one pending relation end to end."""
        repository.search_knowledge.return_value = [
            KnowledgeItem("kn-0", "Refund Policy v1", "policy", "Refunds within 14 days."),
            KnowledgeItem("kn-9", "FAQ: Refunds", "faq", "How do I get a refund?"),
        ]

        async def classify(prompt, **kwargs):
            if "Title: Refund Policy v1" in prompt:
                return reply("supersedes", 0.95, "newer policy")
            return "Answer: " + reply("related", 0.6, "same topic")

        llm_manager.generate.side_effect = classify

        result = await service.discover_relations_for_knowledge("kn-1")

        assert result.knowledge_id == "kn-1"
        assert result.candidates_analyzed == 2
        assert result.relations_found == 2
        assert result.relations_saved == 2
        repository.create_relation.assert_awaited_once()
        assert repository.create_relation.call_args.kwargs["relation_type"] == "supersedes"
        assert repository.create_relation.call_args.kwargs["target_id"] == "kn-0"
        repository.create_relation_candidate.assert_awaited_once()
        assert repository.create_relation_candidate.call_args.kwargs["relation_type"] == "related"

    @pytest.mark.asyncio
    async def test_low_confidence_and_none_are_discarded(self, service, repository, llm_manager):
        """Test the minimum confidence gate and the "none" answer."""
        repository.search_knowledge.return_value = [
            KnowledgeItem("kn-2", "Shipping", "policy", ""),
            KnowledgeItem("kn-3", "Returns", "policy", ""),
            KnowledgeItem("kn-4", "Exchanges", "policy", ""),
        ]
        llm_manager.generate.side_effect = [
            reply("related", 0.49),
            reply("none", 0.99),
            reply("extends", 0.5),
        ]

        result = await service.discover_relations_for_knowledge("kn-1")

        assert result.candidates_analyzed == 3
        assert result.relations_found == 1
        assert result.relations_saved == 1
        repository.create_relation.assert_not_awaited()
        assert repository.create_relation_candidate.call_args.kwargs["target_id"] == "kn-4"

    @pytest.mark.asyncio
    async def test_classification_failure_skips_pair(self, service, repository, llm_manager):
        """Test that one failing pair does not stop the run."""
        repository.search_knowledge.return_value = [
            KnowledgeItem("kn-2", "Shipping", "policy", ""),
            KnowledgeItem("kn-3", "Returns", "policy", ""),
            KnowledgeItem("kn-4", "Exchanges", "policy", ""),
        ]
        llm_manager.generate.side_effect = [
            ClassificationUnavailableError("service down"),
            "no json here",
            reply("related", 0.7),
        ]

        result = await service.discover_relations_for_knowledge("kn-1")

        assert llm_manager.generate.await_count == 3
        assert result.relations_found == 1
        assert result.relations_saved == 1

    @pytest.mark.asyncio
    async def test_duplicates_are_reported_as_saved(self, service, repository, llm_manager):
        repository.search_knowledge.return_value = [KnowledgeItem("kn-2", "Shipping", "policy", "")]
        llm_manager.generate.return_value = reply("related", 0.7)
        repository.create_relation_candidate.side_effect = DuplicateRelationError("duplicate", 409)

        result = await service.discover_relations_for_knowledge("kn-1")

        assert result.relations_found == 1
        assert result.relations_saved == 1

    @pytest.mark.asyncio
    async def test_oversized_confidence_skips_pair(self, service, repository, llm_manager):
        """Test that an unparseable confidence drops only that pair."""
        repository.search_knowledge.return_value = [
            KnowledgeItem("kn-2", "Shipping", "policy", ""),
            KnowledgeItem("kn-3", "Returns", "policy", ""),
        ]
        llm_manager.generate.side_effect = [
            '{"relation_type": "related", "confidence": 1' + "0" * 400 + "}",
            reply("related", 0.6),
        ]

        result = await service.discover_relations_for_knowledge("kn-1")

        assert result.candidates_analyzed == 2
        assert result.relations_found == 1
        assert result.relations_saved == 1
        assert repository.create_relation_candidate.call_args.kwargs["target_id"] == "kn-3"


class TestResultSerialization:
    """Test the dictionaries reported for relations, runs and tasks."""

    def test_relation_to_dict(self):
        relation = DiscoveredRelation("kn-1", "kn-0", RelationType.SUPERSEDES, 0.95, "newer policy")

        assert relation.to_dict() == {
            "source_id": "kn-1",
            "target_id": "kn-0",
            "relation_type": "supersedes",
            "confidence": 0.95,
            "reasoning": "newer policy",
            "bidirectional": False,
        }

    def test_discovery_result_to_dict(self):
        assert DiscoveryResult("kn-1", 4, 2, 1).to_dict() == {
            "knowledge_id": "kn-1",
            "candidates_analyzed": 4,
            "relations_found": 2,
            "relations_saved": 1,
        }

    def test_completed_outcome_to_dict(self):
        outcome = TaskOutcome(
            "t1", "kn-1", TaskStatus.COMPLETED,
            result=DiscoveryResult("kn-1", 4, 2, 1),
            processing_time_ms=120,
        )

        assert outcome.succeeded
        assert outcome.to_dict() == {
            "task_id": "t1",
            "knowledge_id": "kn-1",
            "status": "completed",
            "processing_time_ms": 120,
            "candidates_analyzed": 4,
            "relations_found": 2,
            "relations_saved": 1,
        }

    def test_failed_outcome_to_dict(self):
        outcome = TaskOutcome(
            "t2", "kn-2", TaskStatus.FAILED,
            error="Knowledge not found: kn-2",
            processing_time_ms=5,
        )

        assert not outcome.succeeded
        assert outcome.to_dict() == {
            "task_id": "t2",
            "knowledge_id": "kn-2",
            "status": "failed",
            "processing_time_ms": 5,
            "error": "Knowledge not found: kn-2",
        }


class TestDiscoveryTaskProcessor:
    """Test the task state machine over a batch."""

    @pytest.fixture
    def repository(self):
        repository = make_repository()
        repository.list_discovery_tasks.return_value = [
            DiscoveryTask("t1", "kn-1", TaskStatus.PENDING),
            DiscoveryTask("t2", "kn-2", TaskStatus.PENDING),
            DiscoveryTask("t3", "kn-3", TaskStatus.PENDING),
        ]
        return repository

    @pytest.fixture
    def discovery_service(self):
        async def discover(knowledge_id):
            if knowledge_id == "kn-2":
                raise KnowledgeNotFoundError(knowledge_id)
            return DiscoveryResult(knowledge_id, 4, 2, 1)

        service = Mock(spec=RelationDiscoveryService)
        service.discover_relations_for_knowledge = AsyncMock(side_effect=discover)
        return service

    @pytest.fixture
    def processor(self, repository, discovery_service):
        return DiscoveryTaskProcessor({"batch_limit": 10}, repository, discovery_service)

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, processor, repository, discovery_service):
        """Test that task 2 failing leaves tasks 1 and 3 unaffected."""
        outcomes = await processor.process_pending_tasks()

        assert [o.task_id for o in outcomes] == ["t1", "t2", "t3"]
        assert [o.status for o in outcomes] == [
            TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.COMPLETED
        ]
        assert outcomes[0].result.relations_found == 2
        assert outcomes[2].result.relations_saved == 1
        assert outcomes[1].error == "Knowledge not found: kn-2"
        assert outcomes[1].result is None
        assert discovery_service.discover_relations_for_knowledge.await_count == 3

        repository.list_discovery_tasks.assert_awaited_once_with(TaskStatus.PENDING, 10)

    @pytest.mark.asyncio
    async def test_task_record_transitions(self, processor, repository):
        """Test the fields written on each transition."""
        await processor.process_pending_tasks()

        updates = [(c.args[0], c.args[1]) for c in repository.update_discovery_task.call_args_list]
        t1_updates = [fields for task_id, fields in updates if task_id == "t1"]
        t2_updates = [fields for task_id, fields in updates if task_id == "t2"]

        assert [f["status"] for f in t1_updates] == ["processing", "completed"]
        assert "started_at" in t1_updates[0]
        assert t1_updates[1]["relations_found"] == 2
        assert t1_updates[1]["relations_created"] == 1
        assert t1_updates[1]["processing_time_ms"] >= 0
        assert "completed_at" in t1_updates[1]

        assert [f["status"] for f in t2_updates] == ["processing", "failed"]
        assert t2_updates[1]["error_message"] == "Knowledge not found: kn-2"

    @pytest.mark.asyncio
    async def test_failed_status_write_does_not_abort_batch(self, processor, repository):
        """Test that a failing status update is logged and the batch continues."""
        async def update(task_id, fields):
            if task_id == "t2" and fields["status"] == "failed":
                raise RepositoryError("repository down", 503)
            return {}

        repository.update_discovery_task.side_effect = update

        outcomes = await processor.process_pending_tasks()

        assert len(outcomes) == 3
        assert outcomes[2].status is TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_explicit_limit(self, processor, repository):
        await processor.process_pending_tasks(limit=2)
        repository.list_discovery_tasks.assert_awaited_once_with(TaskStatus.PENDING, 2)

    @pytest.mark.asyncio
    async def test_empty_backlog(self, processor, repository):
        repository.list_discovery_tasks.return_value = []
        assert await processor.process_pending_tasks() == []
        repository.update_discovery_task.assert_not_awaited()


if __name__ == "__main__":
    pytest.main([__file__])
