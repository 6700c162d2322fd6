from datetime import datetime

import pytest
from knowledge_tracker.models.events import KnowledgeEvent, KnowledgeEventType
from knowledge_tracker.models.insights import InsightPriority, InsightType
from knowledge_tracker.models.knowledge import (
    Difficulty,
    KnowledgeNode,
    Understanding,
)
from knowledge_tracker.services.insights.insight_engine import InsightEngine
from knowledge_tracker.services.persistence.blob_writer import KnowledgePersistence
from knowledge_tracker.services.persistence.kv_store import InMemoryKeyValueStore


def make_node(prerequisites=(), next_steps=(), node_id="n1") -> KnowledgeNode:
    return KnowledgeNode(
        id=node_id,
        title="Async Rust",
        url="https://example.com/async",
        domain="example.com",
        snippet="",
        topic="rust",
        difficulty=Difficulty.advanced,
        category="General Knowledge",
        clicked_at=datetime(2026, 3, 1),
        time_spent=30,
        prerequisites=list(prerequisites),
        next_steps=list(next_steps),
    )


def created(node: KnowledgeNode) -> KnowledgeEvent:
    return KnowledgeEvent(
        type=KnowledgeEventType.node_created, node_id=node.id, node=node
    )


def updated(node: KnowledgeNode, previous: Understanding) -> KnowledgeEvent:
    return KnowledgeEvent(
        type=KnowledgeEventType.node_updated,
        node_id=node.id,
        node=node,
        previous_understanding=previous,
    )


@pytest.fixture
def engine():
    return InsightEngine(KnowledgePersistence(InMemoryKeyValueStore()), capacity=5)


def test_no_insights_for_plain_node(engine):
    engine.handle_event(created(make_node()))
    assert engine.get_insights() == []


def test_creation_insights(engine):
    node = make_node(["Basic understanding of rust"], ["Build a small project"])
    engine.handle_event(created(node))

    newest, oldest = engine.get_insights()
    assert oldest.type == InsightType.prerequisite
    assert oldest.priority == InsightPriority.medium
    assert "Basic understanding of rust" in oldest.message
    assert newest.type == InsightType.next_topic
    assert newest.priority == InsightPriority.high
    assert newest.message.endswith("Next: Build a small project")


def test_achievement_emitted_once(engine):
    node = make_node()
    engine.handle_event(created(node))

    node.understanding = Understanding.learning
    engine.handle_event(updated(node, Understanding.explored))
    assert engine.get_insights() == []

    node.understanding = Understanding.mastered
    engine.handle_event(updated(node, Understanding.learning))
    engine.handle_event(updated(node, Understanding.learning))
    engine.handle_event(updated(node, Understanding.mastered))

    achievements = [
        i for i in engine.get_insights() if i.type == InsightType.achievement
    ]
    assert len(achievements) == 1
    assert achievements[0].priority == InsightPriority.high
    assert achievements[0].node_id == node.id


def test_buffer_evicts_oldest(engine):
    for i in range(4):
        engine.handle_event(
            created(make_node(["p"], ["s"], node_id=f"n{i}"))
        )
    insights = engine.get_insights()
    assert len(insights) == 5
    assert insights[0].node_id == "n3"
    assert insights[-1].node_id == "n1"


def test_limit(engine):
    engine.handle_event(created(make_node(["p"], ["s"])))
    assert len(engine.get_insights(1)) == 1
    assert engine.get_insights(1)[0].type == InsightType.next_topic
    assert engine.get_insights(0) == []


def test_restore_keeps_achievement_guard(engine):
    node = make_node()
    node.understanding = Understanding.mastered
    engine.handle_event(updated(node, Understanding.learning))

    restored = InsightEngine(engine.persistence, capacity=5)
    assert restored.restore(engine.dump()) == 1
    restored.handle_event(updated(node, Understanding.learning))
    assert len(restored.get_insights()) == 1


def test_unreadable_blob(engine):
    assert engine.restore('[{"type": "bogus"}]') == 0
    assert engine.get_insights() == []
