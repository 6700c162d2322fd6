import base64
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import urlparse

from knowledge_tracker.exceptions import InvalidResultError
from knowledge_tracker.models.events import KnowledgeEvent, KnowledgeEventType
from knowledge_tracker.models.knowledge import (
    KnowledgeNode,
    SearchResult,
    Understanding,
)
from knowledge_tracker.services.events.bus import KnowledgeEventBus, Listener
from knowledge_tracker.services.knowledge import classifier
from knowledge_tracker.services.persistence.blob_writer import (
    NODES_KEY,
    KnowledgePersistence,
)
from pydantic import ValidationError

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """Owns the canonical set of knowledge nodes.

    Nodes are keyed by an id derived from (topic, url), so clicking the same
    result again under the same topic updates the existing node instead of
    creating a new one. Every mutation is persisted in the background and
    published on the event bus.
    """

    def __init__(
        self,
        bus: KnowledgeEventBus,
        persistence: KnowledgePersistence,
        node_id_length: int = 10,
        revisit_seconds: int = 30,
        learning_threshold: int = 300,
        mastery_threshold: int = 900,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.bus = bus
        self.persistence = persistence
        self.node_id_length = node_id_length
        self.revisit_seconds = revisit_seconds
        self.learning_threshold = learning_threshold
        self.mastery_threshold = mastery_threshold
        self.clock = clock

        self._nodes: Dict[str, KnowledgeNode] = {}

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.bus.subscribe(listener)

    def node_id(self, url: str, topic: str) -> str:
        """Topic plus a truncated base64 encoding of the url.

        Different urls may share a fragment at short lengths; such clicks
        land on the same node.
        """
        encoded = base64.b64encode(url.encode("utf-8")).decode("ascii")
        return f"{topic}-{encoded[: self.node_id_length]}"

    def understanding_for(self, time_spent: int) -> Understanding:
        if time_spent >= self.mastery_threshold:
            return Understanding.mastered
        if time_spent >= self.learning_threshold:
            return Understanding.learning
        return Understanding.explored

    def track_click(
        self, result: Union[SearchResult, Mapping[str, Any]], topic: str
    ) -> KnowledgeNode:
        """Record a click on a search result under a topic."""
        result = validate_result(result)
        node_id = self.node_id(result.url, topic)

        existing = self._nodes.get(node_id)
        if existing is not None:
            existing.clicked_at = self.clock()
            previous = self._add_time(existing, self.revisit_seconds)
            logger.info(f"Revisited knowledge node {node_id} ({existing.title})")
            self._save()
            self.bus.publish(
                KnowledgeEvent(
                    type=KnowledgeEventType.node_updated,
                    node_id=node_id,
                    topic=existing.topic,
                    node=existing,
                    previous_understanding=previous,
                )
            )
            return existing

        node = KnowledgeNode(
            id=node_id,
            title=result.title,
            url=result.url,
            domain=result.domain,
            snippet=result.snippet,
            topic=topic,
            difficulty=classifier.assess_difficulty(result),
            category=classifier.categorize(result),
            clicked_at=self.clock(),
            time_spent=self.revisit_seconds,
            understanding=self.understanding_for(self.revisit_seconds),
            related_topics=classifier.extract_related_topics(result),
            prerequisites=classifier.identify_prerequisites(result, topic),
            next_steps=classifier.suggest_next_steps(result),
        )
        self._nodes[node_id] = node
        logger.info(
            f"Created knowledge node {node_id} ({node.title}); "
            f"{len(self._nodes)} nodes total"
        )

        self._save()
        self.bus.publish(
            KnowledgeEvent(
                type=KnowledgeEventType.node_created,
                node_id=node_id,
                topic=topic,
                node=node,
            )
        )
        return node

    def update_time_spent(self, node_id: str, seconds: int) -> Optional[KnowledgeNode]:
        """Add engagement time to a node; a missing node is ignored.

        Whole-number floats are accepted; fractional seconds are rejected since
        `timeSpent` is stored as an integer.
        """
        if isinstance(seconds, float):
            if not seconds.is_integer():
                raise ValueError(f"seconds must be a whole number, got {seconds}")
            seconds = int(seconds)
        if seconds < 0:
            raise ValueError("seconds must be non-negative")

        node = self._nodes.get(node_id)
        if node is None:
            logger.debug(f"Ignoring time update for missing node {node_id}")
            return None

        previous = self._add_time(node, seconds)
        self._save()
        self.bus.publish(
            KnowledgeEvent(
                type=KnowledgeEventType.node_updated,
                node_id=node_id,
                topic=node.topic,
                node=node,
                previous_understanding=previous,
            )
        )
        return node

    def delete_node(self, node_id: str) -> bool:
        node = self._nodes.pop(node_id, None)
        if node is None:
            return False

        logger.info(f"Deleted knowledge node {node_id}")
        self._save()
        self.bus.publish(
            KnowledgeEvent(
                type=KnowledgeEventType.node_deleted,
                node_id=node_id,
                topic=node.topic,
            )
        )
        return True

    def get_all_nodes(self) -> List[KnowledgeNode]:
        return list(self._nodes.values())

    def get_node(self, node_id: str) -> Optional[KnowledgeNode]:
        return self._nodes.get(node_id)

    def _add_time(self, node: KnowledgeNode, seconds: int) -> Understanding:
        """Add time and advance understanding; returns the previous level."""
        previous = node.understanding
        node.time_spent += seconds
        computed = self.understanding_for(node.time_spent)
        if computed.rank > previous.rank:
            node.understanding = computed
        return previous

    # Persistence
    def dump(self) -> str:
        return json.dumps(
            [
                [node_id, node.model_dump(mode="json", by_alias=True)]
                for node_id, node in self._nodes.items()
            ]
        )

    def restore(self, raw: Optional[str]) -> int:
        """Replace the node set from a serialized blob.

        An unparseable blob leaves the store empty; individual bad entries are
        skipped so one corrupt node cannot take the rest with it.
        """
        self._nodes = {}
        if not raw:
            return 0

        try:
            entries = json.loads(raw)
        except ValueError as e:
            logger.error(f"Discarding unreadable {NODES_KEY} blob: {str(e)}")
            return 0
        if not isinstance(entries, list):
            logger.error(f"Discarding {NODES_KEY} blob: expected a list of pairs")
            return 0

        nodes = {}
        for entry in entries:
            try:
                node_id, data = entry
                nodes[node_id] = KnowledgeNode.model_validate(data)
            except (ValueError, TypeError, ValidationError) as e:
                logger.warning(f"Skipping unreadable {NODES_KEY} entry: {str(e)}")

        self._nodes = nodes
        logger.info(f"Loaded {len(nodes)} knowledge nodes")
        return len(nodes)

    async def load(self) -> int:
        return self.restore(await self.persistence.load(NODES_KEY))

    def _save(self) -> None:
        self.persistence.schedule_save(NODES_KEY, self.dump())


def validate_result(result: Union[SearchResult, Mapping[str, Any]]) -> SearchResult:
    """Turn an incoming record into a SearchResult or raise InvalidResultError."""
    if not isinstance(result, SearchResult):
        try:
            result = SearchResult.model_validate(result)
        except ValidationError as e:
            errors = e.errors()
            field = str(errors[0]["loc"][0]) if errors and errors[0]["loc"] else None
            raise InvalidResultError(
                f"Malformed search result: {str(e)}", field=field
            ) from e

    try:
        parsed = urlparse(result.url)
    except ValueError as e:
        raise InvalidResultError(
            f"Unparseable url: {result.url!r}", field="url"
        ) from e
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidResultError(f"Unparseable url: {result.url!r}", field="url")

    if not result.domain.strip():
        raise InvalidResultError("Search result has an empty domain", field="domain")

    return result
