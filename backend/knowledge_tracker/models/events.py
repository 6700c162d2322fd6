from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from knowledge_tracker.models.knowledge import KnowledgeNode, Understanding


class KnowledgeEventType(str, Enum):
    node_created = "node_created"
    node_updated = "node_updated"
    node_deleted = "node_deleted"
    path_updated = "path_updated"


class KnowledgeEvent(BaseModel):
    """Change notification published on the knowledge event bus."""

    type: KnowledgeEventType
    node_id: Optional[str] = None
    topic: Optional[str] = None
    node: Optional[KnowledgeNode] = Field(
        description="Live node for created/updated events", default=None
    )
    previous_understanding: Optional[Understanding] = Field(
        description="Understanding before an update", default=None
    )

    @property
    def understanding_changed(self) -> bool:
        return (
            self.node is not None
            and self.previous_understanding is not None
            and self.node.understanding != self.previous_understanding
        )
