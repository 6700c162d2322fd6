from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LearningPath(BaseModel):
    """Per-topic aggregation of knowledge nodes."""

    id: str = Field(description="Same as the topic")
    topic: str
    nodes: List[str] = Field(
        description="Member node ids in the order they were added",
        default_factory=list,
    )
    progress: int = Field(description="Completion percentage (0-100)", ge=0, le=100)
    total_time_spent: int = Field(alias="totalTimeSpent", default=0)
    completed: bool = Field(
        description="Marked complete by the learner; pins progress at 100",
        default=False,
    )
    created_at: datetime = Field(alias="createdAt")
    last_updated: datetime = Field(alias="lastUpdated")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("nodes", mode="before")
    def node_references(cls, v):
        # Older blobs embedded whole node objects in the path.
        return [n["id"] if isinstance(n, dict) else n for n in v or []]
