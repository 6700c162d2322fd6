from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ConnectionType(str, Enum):
    prerequisite = "prerequisite"
    related = "related"
    next_step = "next_step"


class GraphConnection(BaseModel):
    """Derived edge between two knowledge nodes."""

    source: str
    target: str
    strength: float = Field(ge=0.0, le=1.0)
    type: ConnectionType


class InteractionState(str, Enum):
    idle = "idle"
    dragging_node = "dragging_node"
    panning = "panning"


class NodePosition(BaseModel):
    id: str
    x: float
    y: float
    pinned: bool = False


class LayoutSnapshot(BaseModel):
    """Read-only view of the layout handed to the renderer."""

    tick: int
    positions: List[NodePosition] = Field(default_factory=list)
    connections: List[GraphConnection] = Field(default_factory=list)
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    selected_id: Optional[str] = None
    state: InteractionState = InteractionState.idle


class PointerAction(str, Enum):
    down = "down"
    move = "move"
    up = "up"
    wheel = "wheel"


class PointerEvent(BaseModel):
    """Pointer input forwarded from the canvas, in screen coordinates."""

    action: PointerAction
    x: float = 0.0
    y: float = 0.0
    delta_y: float = Field(description="Wheel delta, positive zooms out", default=0.0)
