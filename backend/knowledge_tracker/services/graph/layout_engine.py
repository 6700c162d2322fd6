import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from knowledge_tracker.config import Settings
from knowledge_tracker.models.graph import (
    GraphConnection,
    InteractionState,
    LayoutSnapshot,
    NodePosition,
    PointerAction,
    PointerEvent,
)
from knowledge_tracker.models.knowledge import KnowledgeNode
from knowledge_tracker.models.learning import LearningPath
from knowledge_tracker.services.graph.connections import derive_connections

logger = logging.getLogger(__name__)

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))
ZOOM_STEP = 0.1


@dataclass
class LayoutBody:
    """Position, velocity and optional pin of one node in the simulation."""

    id: str
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None

    @property
    def pinned(self) -> bool:
        return self.fx is not None and self.fy is not None


def _separation_direction(i: int, j: int) -> Tuple[float, float]:
    """Unit vector pushing body i away from a coincident body j."""
    angle = GOLDEN_ANGLE * min(i, j)
    sign = 1.0 if i < j else -1.0
    return sign * math.cos(angle), sign * math.sin(angle)


class GraphLayoutEngine:
    """Force-directed layout of the knowledge graph plus pointer interaction.

    Bodies are kept in a dense list with an id -> index table; connections are
    stored as index pairs so each tick only walks lists. The renderer reads
    `snapshot()`, which is refreshed every few ticks rather than every tick.
    """

    def __init__(
        self,
        width: float = 800.0,
        height: float = 600.0,
        margin: float = 50.0,
        repulsion: float = 10.0,
        spring: float = 0.001,
        damping: float = 0.9,
        hit_radius: float = 20.0,
        min_zoom: float = 0.5,
        max_zoom: float = 2.0,
        tick_interval: float = 0.016,
        snapshot_every: int = 2,
        rng: Optional[random.Random] = None,
    ):
        self.width = width
        self.height = height
        self.margin = margin
        self.repulsion = repulsion
        self.spring = spring
        self.damping = damping
        self.hit_radius = hit_radius
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.tick_interval = tick_interval
        self.snapshot_every = max(1, snapshot_every)
        self.rng = rng or random.Random()

        self._bodies: List[LayoutBody] = []
        self._index: Dict[str, int] = {}
        self._connections: List[GraphConnection] = []
        self._springs: List[Tuple[int, int, float]] = []
        self.tick = 0

        # Interaction
        self.state = InteractionState.idle
        self.zoom = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0
        self.selected_id: Optional[str] = None
        self._dragged_id: Optional[str] = None
        self._grab_offset = (0.0, 0.0)
        self._last_pan_point = (0.0, 0.0)

        self._snapshot = LayoutSnapshot(tick=0)
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "GraphLayoutEngine":
        return cls(
            width=settings.canvas_width,
            height=settings.canvas_height,
            margin=settings.canvas_margin,
            repulsion=settings.repulsion_strength,
            spring=settings.spring_strength,
            damping=settings.damping,
            hit_radius=settings.hit_radius,
            min_zoom=settings.min_zoom,
            max_zoom=settings.max_zoom,
            tick_interval=settings.tick_interval,
            snapshot_every=settings.snapshot_every_ticks,
            rng=random.Random(settings.layout_seed),
        )

    # Graph structure
    def rebuild(
        self, nodes: List[KnowledgeNode], paths: Iterable[LearningPath]
    ) -> None:
        """Sync bodies with the node set and recompute every connection."""
        previous = {body.id: body for body in self._bodies}
        bodies = []
        for node in nodes:
            body = previous.get(node.id)
            if body is None:
                body = self._spawn(node.id, first=not previous and not bodies)
            bodies.append(body)

        self._bodies = bodies
        self._index = {body.id: i for i, body in enumerate(bodies)}
        self._connections = derive_connections(nodes, paths)
        self._springs = [
            (self._index[c.source], self._index[c.target], c.strength)
            for c in self._connections
        ]

        if self._dragged_id is not None and self._dragged_id not in self._index:
            logger.info(f"Dragged node {self._dragged_id} was removed; ending drag")
            self._dragged_id = None
            self.state = InteractionState.idle
        if self.selected_id is not None and self.selected_id not in self._index:
            self.selected_id = None

        self._publish()

    def _spawn(self, node_id: str, first: bool) -> LayoutBody:
        cx = self.width / 2
        if first:
            return LayoutBody(id=node_id, x=cx, y=self.height / 2)
        # New nodes drop in near the top centre
        return LayoutBody(
            id=node_id,
            x=cx + (self.rng.random() - 0.5) * self.width / 4,
            y=self.height / 6 + self.rng.random() * self.height / 6,
        )

    @property
    def connections(self) -> List[GraphConnection]:
        return list(self._connections)

    def position(self, node_id: str) -> Optional[Tuple[float, float]]:
        body = self._body(node_id)
        return (body.x, body.y) if body else None

    def place(self, node_id: str, x: float, y: float) -> None:
        body = self._body(node_id)
        if body is None:
            raise KeyError(node_id)
        body.x, body.y = x, y
        body.vx = body.vy = 0.0

    def _body(self, node_id: Optional[str]) -> Optional[LayoutBody]:
        index = self._index.get(node_id) if node_id is not None else None
        return self._bodies[index] if index is not None else None

    # Simulation
    def step(self) -> None:
        """Advance the simulation by one tick."""
        bodies = self._bodies
        n = len(bodies)
        ax = [0.0] * n
        ay = [0.0] * n

        for i in range(n):
            bi = bodies[i]
            if bi.pinned:
                continue
            for j in range(n):
                if i == j:
                    continue
                bj = bodies[j]
                dx = bi.x - bj.x
                dy = bi.y - bj.y
                distance = math.hypot(dx, dy)
                if distance == 0.0:
                    ux, uy = _separation_direction(i, j)
                else:
                    ux, uy = dx / distance, dy / distance
                distance = max(distance, 1.0)
                force = self.repulsion / (distance * distance)
                ax[i] += ux * force
                ay[i] += uy * force

        for a, b, strength in self._springs:
            # Spring force grows linearly with distance
            dx = bodies[b].x - bodies[a].x
            dy = bodies[b].y - bodies[a].y
            k = self.spring * strength
            ax[a] += k * dx
            ay[a] += k * dy
            ax[b] -= k * dx
            ay[b] -= k * dy

        for i, body in enumerate(bodies):
            if body.pinned:
                body.x, body.y = body.fx, body.fy
                body.vx = body.vy = 0.0
                continue
            body.vx = (body.vx + ax[i]) * self.damping
            body.vy = (body.vy + ay[i]) * self.damping
            body.x = self._clamp(body.x + body.vx, self.margin, self.width - self.margin)
            body.y = self._clamp(body.y + body.vy, self.margin, self.height - self.margin)

        self.tick += 1
        if self.tick % self.snapshot_every == 0:
            self._publish()

    @staticmethod
    def _clamp(value: float, low: float, high: float) -> float:
        return max(low, min(high, value))

    def snapshot(self) -> LayoutSnapshot:
        return self._snapshot

    def _publish(self) -> None:
        self._snapshot = LayoutSnapshot(
            tick=self.tick,
            positions=[
                NodePosition(id=body.id, x=body.x, y=body.y, pinned=body.pinned)
                for body in self._bodies
            ],
            connections=list(self._connections),
            zoom=self.zoom,
            pan_x=self.pan_x,
            pan_y=self.pan_y,
            selected_id=self.selected_id,
            state=self.state,
        )

    def start(self) -> None:
        """Run the tick loop on the current event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            self.step()
            await asyncio.sleep(self.tick_interval)

    # Interaction
    def to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        return sx / self.zoom - self.pan_x, sy / self.zoom - self.pan_y

    def hit_test(self, x: float, y: float) -> Optional[str]:
        """Nearest node within the hit radius of a world-space point."""
        best_id, best_distance = None, self.hit_radius
        for body in self._bodies:
            distance = math.hypot(x - body.x, y - body.y)
            if distance <= best_distance:
                best_id, best_distance = body.id, distance
        return best_id

    def pointer_down(self, sx: float, sy: float) -> None:
        self._release_drag()
        wx, wy = self.to_world(sx, sy)
        hit = self.hit_test(wx, wy)
        if hit is not None:
            body = self._body(hit)
            self.selected_id = hit
            self._dragged_id = hit
            self._grab_offset = (wx - body.x, wy - body.y)
            body.fx, body.fy = body.x, body.y
            body.vx = body.vy = 0.0
            self.state = InteractionState.dragging_node
        else:
            self.selected_id = None
            self._last_pan_point = (sx, sy)
            self.state = InteractionState.panning
        self._publish()

    def pointer_move(self, sx: float, sy: float) -> None:
        if self.state == InteractionState.dragging_node:
            body = self._body(self._dragged_id)
            if body is None:
                self._dragged_id = None
                self.state = InteractionState.idle
            else:
                wx, wy = self.to_world(sx, sy)
                body.x = body.fx = wx - self._grab_offset[0]
                body.y = body.fy = wy - self._grab_offset[1]
        elif self.state == InteractionState.panning:
            last_x, last_y = self._last_pan_point
            self.pan_x += sx - last_x
            self.pan_y += sy - last_y
            self._last_pan_point = (sx, sy)
        else:
            return
        self._publish()

    def pointer_up(self) -> None:
        self._release_drag()
        self.state = InteractionState.idle
        self._publish()

    def _release_drag(self) -> None:
        body = self._body(self._dragged_id)
        if body is not None:
            body.fx = body.fy = None
        self._dragged_id = None

    def wheel(self, delta_y: float) -> None:
        if delta_y == 0:
            return
        factor = 0.9 if delta_y > 0 else 1.1
        self._set_zoom(self.zoom * factor)

    def zoom_in(self) -> None:
        self._set_zoom(self.zoom + ZOOM_STEP)

    def zoom_out(self) -> None:
        self._set_zoom(self.zoom - ZOOM_STEP)

    def _set_zoom(self, zoom: float) -> None:
        self.zoom = self._clamp(zoom, self.min_zoom, self.max_zoom)
        self._publish()

    def handle_pointer(self, event: PointerEvent) -> None:
        if event.action == PointerAction.down:
            self.pointer_down(event.x, event.y)
        elif event.action == PointerAction.move:
            self.pointer_move(event.x, event.y)
        elif event.action == PointerAction.up:
            self.pointer_up()
        elif event.action == PointerAction.wheel:
            self.wheel(event.delta_y)
