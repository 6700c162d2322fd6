from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Difficulty(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"


class Understanding(str, Enum):
    """Understanding level, ordered from least to most engaged."""

    explored = "explored"
    learning = "learning"
    mastered = "mastered"

    @property
    def rank(self) -> int:
        return _UNDERSTANDING_ORDER.index(self)


_UNDERSTANDING_ORDER = [
    Understanding.explored,
    Understanding.learning,
    Understanding.mastered,
]


class SearchResult(BaseModel):
    """Raw search-result record supplied by the search service."""

    title: str = Field(description="Result title")
    url: str = Field(description="Absolute URL of the result")
    domain: str = Field(description="Host the result was served from")
    snippet: str = Field(description="Short excerpt shown with the result")
    score: Optional[float] = None
    timestamp: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class KnowledgeNode(BaseModel):
    """One observed, classified piece of content."""

    id: str = Field(description="Derived from (topic, url)")
    title: str
    url: str
    domain: str
    snippet: str
    topic: str = Field(description="Query context the node was discovered under")
    difficulty: Difficulty
    category: str
    clicked_at: datetime = Field(
        alias="clickedAt", description="Time of the most recent click"
    )
    time_spent: int = Field(
        alias="timeSpent", description="Cumulative engagement in seconds", ge=0
    )
    understanding: Understanding = Understanding.explored
    related_topics: List[str] = Field(alias="relatedTopics", default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(alias="nextSteps", default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class KnowledgeStats(BaseModel):
    """Aggregate numbers shown on the learning dashboard."""

    total_nodes: int = Field(alias="totalNodes")
    total_time_spent: int = Field(alias="totalTimeSpent")
    topics_explored: int = Field(alias="topicsExplored")
    mastery_level: float = Field(
        alias="masteryLevel", description="Percentage of nodes mastered (0-100)"
    )
    learning_streak: int = Field(
        alias="learningStreak", description="Consecutive days with activity"
    )

    model_config = ConfigDict(populate_by_name=True)
