from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class InsightType(str, Enum):
    prerequisite = "prerequisite"
    next_topic = "next_topic"
    gap = "gap"
    achievement = "achievement"


class InsightPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class KnowledgeInsight(BaseModel):
    """Advisory message derived from node state."""

    type: InsightType
    message: str
    action: Optional[str] = None
    priority: InsightPriority
    node_id: Optional[str] = Field(
        alias="nodeId", description="Node the insight was raised for", default=None
    )
    created_at: datetime = Field(alias="createdAt", default_factory=datetime.now)

    model_config = ConfigDict(populate_by_name=True)
