import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, List, Mapping, Optional, Union

from knowledge_tracker.config import Settings
from knowledge_tracker.models.events import KnowledgeEvent, KnowledgeEventType
from knowledge_tracker.models.insights import KnowledgeInsight
from knowledge_tracker.models.knowledge import (
    KnowledgeNode,
    KnowledgeStats,
    SearchResult,
    Understanding,
)
from knowledge_tracker.models.learning import LearningPath
from knowledge_tracker.services.events.bus import KnowledgeEventBus, Listener
from knowledge_tracker.services.graph.layout_engine import GraphLayoutEngine
from knowledge_tracker.services.insights.insight_engine import InsightEngine
from knowledge_tracker.services.knowledge.store import KnowledgeStore
from knowledge_tracker.services.learning.path_builder import PathBuilder
from knowledge_tracker.services.persistence.blob_writer import KnowledgePersistence
from knowledge_tracker.services.persistence.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    MongoKeyValueStore,
)

logger = logging.getLogger(__name__)


class KnowledgeTracker:
    """Wires the knowledge components together behind one object.

    Built once at startup and passed to whoever needs it. Internal listeners
    are subscribed before any external one, so by the time a renderer is
    notified the paths, insights and layout already reflect the change.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
        layout: Optional[GraphLayoutEngine] = None,
    ):
        settings = settings or Settings()
        self.clock = clock

        self.bus = KnowledgeEventBus()
        self.persistence = KnowledgePersistence(backend)
        self.store = KnowledgeStore(
            self.bus,
            self.persistence,
            node_id_length=settings.node_id_length,
            revisit_seconds=settings.revisit_seconds,
            learning_threshold=settings.learning_threshold,
            mastery_threshold=settings.mastery_threshold,
            clock=clock,
        )
        self.path_builder = PathBuilder(self.persistence, clock=clock)
        self.insight_engine = InsightEngine(
            self.persistence, capacity=settings.insight_capacity
        )
        self.layout = layout or GraphLayoutEngine.from_settings(settings)

        self.bus.subscribe(self.path_builder.handle_event)
        self.bus.subscribe(self.insight_engine.handle_event)
        self.bus.subscribe(self._refresh_layout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "KnowledgeTracker":
        if settings.mongodb_uri:
            backend = MongoKeyValueStore(
                settings.mongodb_uri, database=settings.mongodb_database
            )
        else:
            logger.info("No MongoDB configured; keeping knowledge in memory")
            backend = InMemoryKeyValueStore()
        return cls(backend, settings=settings)

    def _refresh_layout(self, event: KnowledgeEvent) -> None:
        if event.type in (
            KnowledgeEventType.node_created,
            KnowledgeEventType.node_deleted,
            KnowledgeEventType.path_updated,
        ):
            self.layout.rebuild(
                self.store.get_all_nodes(), self.path_builder.get_all_paths()
            )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.bus.subscribe(listener)

    async def load(self) -> None:
        """Restore all three blobs; each one fails independently."""
        await self.store.load()
        await self.path_builder.load()
        await self.insight_engine.load()
        self.layout.rebuild(
            self.store.get_all_nodes(), self.path_builder.get_all_paths()
        )

    async def flush(self) -> None:
        await self.persistence.flush()

    # Mutations
    def track_click(
        self, result: Union[SearchResult, Mapping[str, Any]], topic: str
    ) -> KnowledgeNode:
        return self.store.track_click(result, topic)

    def update_time_spent(self, node_id: str, seconds: int) -> Optional[KnowledgeNode]:
        return self.store.update_time_spent(node_id, seconds)

    def delete_node(self, node_id: str) -> bool:
        return self.store.delete_node(node_id)

    def mark_topic_completed(self, topic: str) -> Optional[LearningPath]:
        path = self.path_builder.mark_completed(topic)
        if path is not None:
            self.bus.publish(
                KnowledgeEvent(type=KnowledgeEventType.path_updated, topic=topic)
            )
        return path

    # Queries
    def get_all_nodes(self) -> List[KnowledgeNode]:
        return self.store.get_all_nodes()

    def get_node(self, node_id: str) -> Optional[KnowledgeNode]:
        return self.store.get_node(node_id)

    def get_all_learning_paths(self) -> List[LearningPath]:
        return self.path_builder.get_all_paths()

    def get_learning_progress(self, topic: str) -> Optional[LearningPath]:
        return self.path_builder.get_path(topic)

    def get_insights(self, limit: Optional[int] = None) -> List[KnowledgeInsight]:
        return self.insight_engine.get_insights(limit)

    def get_recommended_topics(self, limit: int = 10) -> List[str]:
        """Distinct related topics across all nodes, in first-seen order."""
        seen = {}
        for node in self.store.get_all_nodes():
            for topic in node.related_topics:
                seen.setdefault(topic, None)
        return list(seen)[:limit]

    def get_knowledge_stats(self) -> KnowledgeStats:
        nodes = self.store.get_all_nodes()
        mastered = sum(1 for n in nodes if n.understanding == Understanding.mastered)
        return KnowledgeStats(
            total_nodes=len(nodes),
            total_time_spent=sum(n.time_spent for n in nodes),
            topics_explored=len({n.topic for n in nodes}),
            mastery_level=(mastered / len(nodes) * 100) if nodes else 0.0,
            learning_streak=learning_streak(
                [n.clicked_at for n in nodes], self.clock().date()
            ),
        )


def learning_streak(activity: List[datetime], today: date) -> int:
    """Consecutive days with activity, ending today or yesterday."""
    days = {moment.date() for moment in activity}
    cursor = today if today in days else today - timedelta(days=1)

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak
