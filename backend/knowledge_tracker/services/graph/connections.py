"""Derive graph edges from the current node set.

Recomputed from scratch on every change, so a deleted node can never leave a
dangling edge behind. The edges are suggestions built from substring and
vocabulary matches, not a verified dependency graph.
"""

from typing import Dict, Iterable, List

from knowledge_tracker.models.graph import ConnectionType, GraphConnection
from knowledge_tracker.models.knowledge import KnowledgeNode
from knowledge_tracker.models.learning import LearningPath

RELATED_STRENGTH = 0.5
PREREQUISITE_STRENGTH = 0.8
NEXT_STEP_STRENGTH = 0.7


def derive_connections(
    nodes: List[KnowledgeNode], paths: Iterable[LearningPath]
) -> List[GraphConnection]:
    connections: List[GraphConnection] = []
    present: Dict[str, KnowledgeNode] = {node.id: node for node in nodes}

    # Shared related topics
    topic_sets = [set(node.related_topics) for node in nodes]
    for i, node in enumerate(nodes):
        for j in range(i + 1, len(nodes)):
            if topic_sets[i] & topic_sets[j]:
                connections.append(
                    GraphConnection(
                        source=node.id,
                        target=nodes[j].id,
                        strength=RELATED_STRENGTH,
                        type=ConnectionType.related,
                    )
                )

    # Prerequisite named in another node's title
    lowered_titles = [(other.id, other.title.lower()) for other in nodes]
    for node in nodes:
        for prerequisite in node.prerequisites:
            needle = prerequisite.lower()
            match = next(
                (
                    other_id
                    for other_id, title in lowered_titles
                    if other_id != node.id and needle in title
                ),
                None,
            )
            if match is not None:
                connections.append(
                    GraphConnection(
                        source=match,
                        target=node.id,
                        strength=PREREQUISITE_STRENGTH,
                        type=ConnectionType.prerequisite,
                    )
                )

    # Consecutive members of a learning path
    for path in paths:
        members = [node_id for node_id in path.nodes if node_id in present]
        for current, following in zip(members, members[1:]):
            connections.append(
                GraphConnection(
                    source=current,
                    target=following,
                    strength=NEXT_STEP_STRENGTH,
                    type=ConnectionType.next_step,
                )
            )

    return connections
