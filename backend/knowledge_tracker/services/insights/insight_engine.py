import json
import logging
from collections import deque
from typing import Deque, List, Optional, Set

from knowledge_tracker.models.events import KnowledgeEvent, KnowledgeEventType
from knowledge_tracker.models.insights import (
    InsightPriority,
    InsightType,
    KnowledgeInsight,
)
from knowledge_tracker.models.knowledge import KnowledgeNode, Understanding
from knowledge_tracker.services.persistence.blob_writer import (
    INSIGHTS_KEY,
    KnowledgePersistence,
)
from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

_insight_list = TypeAdapter(List[KnowledgeInsight])


class InsightEngine:
    """Derives advisory insights from node creation and mastery.

    Insights live in a fixed-capacity buffer; once full, the oldest insight is
    evicted for each new one.
    """

    def __init__(self, persistence: KnowledgePersistence, capacity: int = 50):
        self.persistence = persistence
        self.capacity = capacity
        self._insights: Deque[KnowledgeInsight] = deque(maxlen=capacity)
        self._achieved: Set[str] = set()

    def handle_event(self, event: KnowledgeEvent) -> None:
        node = event.node
        if node is None:
            return

        emitted = []
        if event.type == KnowledgeEventType.node_created:
            emitted.extend(self._creation_insights(node))
            if node.understanding == Understanding.mastered:
                emitted.extend(self._achievement_insights(node))
        elif event.type == KnowledgeEventType.node_updated and event.understanding_changed:
            emitted.extend(self._achievement_insights(node))

        if emitted:
            self._insights.extend(emitted)
            logger.info(f"Emitted {len(emitted)} insights for {node.id}")
            self._save()

    def _creation_insights(self, node: KnowledgeNode) -> List[KnowledgeInsight]:
        insights = []
        if node.prerequisites:
            insights.append(
                KnowledgeInsight(
                    type=InsightType.prerequisite,
                    message=(
                        f"You're exploring {node.topic}, but you might need to "
                        f"understand: {', '.join(node.prerequisites)}"
                    ),
                    action="Review prerequisites",
                    priority=InsightPriority.medium,
                    node_id=node.id,
                )
            )
        if node.next_steps:
            insights.append(
                KnowledgeInsight(
                    type=InsightType.next_topic,
                    message=f"Great! You've explored {node.title}. Next: {node.next_steps[0]}",
                    action="Continue learning",
                    priority=InsightPriority.high,
                    node_id=node.id,
                )
            )
        return insights

    def _achievement_insights(self, node: KnowledgeNode) -> List[KnowledgeInsight]:
        if node.understanding != Understanding.mastered or node.id in self._achieved:
            return []

        self._achieved.add(node.id)
        return [
            KnowledgeInsight(
                type=InsightType.achievement,
                message=f"You've mastered {node.title}! Consider exploring related topics.",
                action="Explore related topics",
                priority=InsightPriority.high,
                node_id=node.id,
            )
        ]

    def get_insights(self, limit: Optional[int] = None) -> List[KnowledgeInsight]:
        """Insights newest first, optionally capped at `limit`."""
        newest_first = list(reversed(self._insights))
        if limit is not None:
            return newest_first[: max(limit, 0)]
        return newest_first

    # Persistence
    def dump(self) -> str:
        return json.dumps(
            [
                insight.model_dump(mode="json", by_alias=True)
                for insight in self._insights
            ]
        )

    def restore(self, raw: Optional[str]) -> int:
        self._insights = deque(maxlen=self.capacity)
        self._achieved = set()
        if not raw:
            return 0

        try:
            insights = _insight_list.validate_json(raw)
        except (ValueError, ValidationError) as e:
            logger.error(f"Discarding unreadable {INSIGHTS_KEY} blob: {str(e)}")
            return 0

        self._insights.extend(insights)
        self._achieved = {
            insight.node_id
            for insight in insights
            if insight.type == InsightType.achievement and insight.node_id
        }
        logger.info(f"Loaded {len(self._insights)} insights")
        return len(self._insights)

    async def load(self) -> int:
        return self.restore(await self.persistence.load(INSIGHTS_KEY))

    def _save(self) -> None:
        self.persistence.schedule_save(INSIGHTS_KEY, self.dump())
