import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from knowledge_tracker.models.events import KnowledgeEvent, KnowledgeEventType
from knowledge_tracker.models.knowledge import KnowledgeNode
from knowledge_tracker.models.learning import LearningPath
from knowledge_tracker.services.persistence.blob_writer import (
    PATHS_KEY,
    KnowledgePersistence,
)
from pydantic import ValidationError

logger = logging.getLogger(__name__)

PROGRESS_PER_NODE = 10


class PathBuilder:
    """Maintains one learning path per topic.

    Progress is count based: each member node is worth 10%, capped at 100.
    """

    def __init__(
        self,
        persistence: KnowledgePersistence,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.persistence = persistence
        self.clock = clock
        self._paths: Dict[str, LearningPath] = {}

    def handle_event(self, event: KnowledgeEvent) -> None:
        if event.type == KnowledgeEventType.node_created and event.node is not None:
            self.ensure_and_update(event.node.topic, event.node)
        elif event.type == KnowledgeEventType.node_deleted and event.node_id:
            self.remove_node(event.node_id)

    def ensure_and_update(self, topic: str, node: KnowledgeNode) -> LearningPath:
        path = self._paths.get(topic)
        now = self.clock()
        if path is None:
            path = LearningPath(
                id=topic,
                topic=topic,
                progress=0,
                created_at=now,
                last_updated=now,
            )
            self._paths[topic] = path
            logger.info(f"Created learning path for '{topic}'")

        if node.id not in path.nodes:
            path.nodes.append(node.id)
            path.total_time_spent += node.time_spent
        path.progress = self._progress(path)
        path.last_updated = now

        self._save()
        return path

    def remove_node(self, node_id: str) -> None:
        """Drop a deleted node from every path that references it."""
        changed = False
        for path in self._paths.values():
            if node_id in path.nodes:
                path.nodes.remove(node_id)
                path.progress = self._progress(path)
                path.last_updated = self.clock()
                changed = True
        if changed:
            self._save()

    def mark_completed(self, topic: str) -> Optional[LearningPath]:
        path = self._paths.get(topic)
        if path is None:
            return None

        path.completed = True
        path.progress = self._progress(path)
        path.last_updated = self.clock()
        logger.info(f"Marked learning path '{topic}' completed")
        self._save()
        return path

    def get_path(self, topic: str) -> Optional[LearningPath]:
        return self._paths.get(topic)

    def get_all_paths(self) -> List[LearningPath]:
        return list(self._paths.values())

    @staticmethod
    def _progress(path: LearningPath) -> int:
        if path.completed:
            return 100
        return min(PROGRESS_PER_NODE * len(path.nodes), 100)

    # Persistence
    def dump(self) -> str:
        return json.dumps(
            [
                [topic, path.model_dump(mode="json", by_alias=True)]
                for topic, path in self._paths.items()
            ]
        )

    def restore(self, raw: Optional[str]) -> int:
        self._paths = {}
        if not raw:
            return 0

        try:
            entries = json.loads(raw)
        except ValueError as e:
            logger.error(f"Discarding unreadable {PATHS_KEY} blob: {str(e)}")
            return 0
        if not isinstance(entries, list):
            logger.error(f"Discarding {PATHS_KEY} blob: expected a list of pairs")
            return 0

        paths = {}
        for entry in entries:
            try:
                topic, data = entry
                paths[topic] = LearningPath.model_validate(data)
            except (ValueError, TypeError, ValidationError) as e:
                logger.warning(f"Skipping unreadable {PATHS_KEY} entry: {str(e)}")

        self._paths = paths
        logger.info(f"Loaded {len(paths)} learning paths")
        return len(paths)

    async def load(self) -> int:
        return self.restore(await self.persistence.load(PATHS_KEY))

    def _save(self) -> None:
        self.persistence.schedule_save(PATHS_KEY, self.dump())
