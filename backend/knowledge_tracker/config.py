from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "knowledge_tracker"
    cors_origins: List[str] = ["http://localhost:3000"]
    environment: str = "development"

    # Length of the base64 url fragment in node ids. 10 matches ids already
    # persisted by earlier clients.
    node_id_length: int = 10
    revisit_seconds: int = 30
    learning_threshold: int = 300
    mastery_threshold: int = 900
    insight_capacity: int = 50

    canvas_width: float = 800.0
    canvas_height: float = 600.0
    canvas_margin: float = 50.0
    repulsion_strength: float = 10.0
    spring_strength: float = 0.001
    damping: float = 0.9
    hit_radius: float = 20.0
    min_zoom: float = 0.5
    max_zoom: float = 2.0
    tick_interval: float = 0.016
    snapshot_every_ticks: int = 2
    layout_seed: Optional[int] = None

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
