from datetime import datetime

from knowledge_tracker.models.graph import ConnectionType
from knowledge_tracker.models.knowledge import Difficulty, KnowledgeNode
from knowledge_tracker.models.learning import LearningPath
from knowledge_tracker.services.graph.connections import derive_connections

NOW = datetime(2026, 3, 1)


def make_node(node_id, title="Page", related=(), prerequisites=(), topic="web"):
    return KnowledgeNode(
        id=node_id,
        title=title,
        url=f"https://example.com/{node_id}",
        domain="example.com",
        snippet="",
        topic=topic,
        difficulty=Difficulty.intermediate,
        category="General Knowledge",
        clicked_at=NOW,
        time_spent=30,
        related_topics=list(related),
        prerequisites=list(prerequisites),
    )


def make_path(topic, node_ids):
    return LearningPath(
        id=topic,
        topic=topic,
        nodes=list(node_ids),
        progress=min(10 * len(node_ids), 100),
        created_at=NOW,
        last_updated=NOW,
    )


def edges(connections, kind):
    return [(c.source, c.target, c.strength) for c in connections if c.type == kind]


def test_related_topics_overlap():
    nodes = [
        make_node("a", related=["python", "api"]),
        make_node("b", related=["api"]),
        make_node("c", related=["css"]),
    ]
    assert edges(derive_connections(nodes, []), ConnectionType.related) == [
        ("a", "b", 0.5)
    ]


def test_prerequisite_matches_title_case_insensitively():
    nodes = [
        make_node("basics", title="HTTP and REST Concepts explained"),
        make_node("client", prerequisites=["HTTP and REST concepts"]),
    ]
    assert edges(derive_connections(nodes, []), ConnectionType.prerequisite) == [
        ("basics", "client", 0.8)
    ]


def test_prerequisite_never_matches_itself():
    nodes = [make_node("a", title="Core language knowledge", prerequisites=["core language"])]
    assert derive_connections(nodes, []) == []


def test_path_order_gives_next_steps():
    nodes = [make_node("a"), make_node("b"), make_node("c")]
    connections = derive_connections(nodes, [make_path("web", ["a", "b", "c"])])
    assert edges(connections, ConnectionType.next_step) == [
        ("a", "b", 0.7),
        ("b", "c", 0.7),
    ]


def test_missing_nodes_never_referenced():
    nodes = [make_node("a", related=["api"]), make_node("c", related=["api"])]
    connections = derive_connections(nodes, [make_path("web", ["a", "b", "c"])])
    ids = {"a", "c"}
    assert all(c.source in ids and c.target in ids for c in connections)
    assert ("a", "c", 0.7) in edges(connections, ConnectionType.next_step)
