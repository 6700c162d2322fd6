import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Annotated, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.websockets import WebSocket, WebSocketDisconnect
from knowledge_tracker.config import get_settings
from knowledge_tracker.exceptions import InvalidResultError
from knowledge_tracker.models.graph import LayoutSnapshot, PointerEvent
from knowledge_tracker.models.insights import KnowledgeInsight
from knowledge_tracker.models.knowledge import KnowledgeNode, KnowledgeStats
from knowledge_tracker.models.learning import LearningPath
from knowledge_tracker.services.tracker import KnowledgeTracker
from pydantic import BaseModel, Field, ValidationError

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Store the tracker instance globally
knowledge_tracker = None


class ClickRequest(BaseModel):
    """A click on a search result under a topic."""

    result: dict = Field(description="Raw search-result record")
    topic: str = Field(description="Query the result was found under")


class TimeSpentRequest(BaseModel):
    seconds: int = Field(description="Additional engagement time", ge=0)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global knowledge_tracker

    # Startup
    settings = get_settings()
    try:
        knowledge_tracker = KnowledgeTracker.from_settings(settings)
        await knowledge_tracker.load()
        knowledge_tracker.layout.start()
        logger.info("Successfully initialized knowledge tracker")
    except Exception as e:
        logger.error(f"Failed to initialize: {str(e)}")
        raise
    yield
    # Shutdown
    await knowledge_tracker.layout.stop()
    await knowledge_tracker.flush()


app = FastAPI(
    title="Knowledge Tracker API",
    description="Tracks explored search results as a knowledge graph",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies
async def get_knowledge_tracker() -> KnowledgeTracker:
    """Dependency to get the configured KnowledgeTracker."""
    global knowledge_tracker
    if knowledge_tracker is None:
        raise RuntimeError("KnowledgeTracker not initialized")
    return knowledge_tracker


Tracker = Annotated[KnowledgeTracker, Depends(get_knowledge_tracker)]


@app.post("/api/knowledge/clicks", response_model=KnowledgeNode)
async def track_click(request: ClickRequest, tracker: Tracker):
    """Record a click on a search result."""
    try:
        return tracker.track_click(request.result, request.topic)
    except InvalidResultError as e:
        logger.warning(f"Rejected search result: {e.message}")
        raise HTTPException(status_code=422, detail=e.message)


@app.post("/api/knowledge/nodes/{node_id}/time", response_model=KnowledgeNode)
async def update_time_spent(node_id: str, request: TimeSpentRequest, tracker: Tracker):
    node = tracker.update_time_spent(node_id, request.seconds)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Unknown node {node_id}")
    return node


@app.delete("/api/knowledge/nodes/{node_id}")
async def delete_node(node_id: str, tracker: Tracker):
    return {"deleted": tracker.delete_node(node_id)}


@app.get("/api/knowledge/nodes", response_model=List[KnowledgeNode])
async def get_nodes(tracker: Tracker):
    return tracker.get_all_nodes()


@app.get("/api/knowledge/nodes/{node_id}", response_model=KnowledgeNode)
async def get_node(node_id: str, tracker: Tracker):
    node = tracker.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Unknown node {node_id}")
    return node


@app.get("/api/knowledge/paths", response_model=List[LearningPath])
async def get_paths(tracker: Tracker):
    return tracker.get_all_learning_paths()


@app.get("/api/knowledge/paths/{topic}", response_model=LearningPath)
async def get_path(topic: str, tracker: Tracker):
    path = tracker.get_learning_progress(topic)
    if path is None:
        raise HTTPException(status_code=404, detail=f"No learning path for {topic}")
    return path


@app.post("/api/knowledge/paths/{topic}/complete", response_model=LearningPath)
async def complete_path(topic: str, tracker: Tracker):
    path = tracker.mark_topic_completed(topic)
    if path is None:
        raise HTTPException(status_code=404, detail=f"No learning path for {topic}")
    return path


@app.get("/api/knowledge/insights", response_model=List[KnowledgeInsight])
async def get_insights(tracker: Tracker, limit: Optional[int] = None):
    return tracker.get_insights(limit)


@app.get("/api/knowledge/stats", response_model=KnowledgeStats)
async def get_stats(tracker: Tracker):
    return tracker.get_knowledge_stats()


@app.get("/api/knowledge/recommended-topics", response_model=List[str])
async def get_recommended_topics(tracker: Tracker, limit: int = 10):
    return tracker.get_recommended_topics(limit)


@app.get("/api/graph/snapshot", response_model=LayoutSnapshot)
async def get_snapshot(tracker: Tracker):
    return tracker.layout.snapshot()


@app.websocket("/ws/graph")
async def websocket_graph(websocket: WebSocket, tracker: Tracker):
    """Stream layout snapshots and accept pointer input from the canvas."""
    await websocket.accept()
    layout = tracker.layout

    async def send_snapshots():
        last_sent = None
        while True:
            snapshot = layout.snapshot()
            if snapshot is not last_sent:
                await websocket.send_json(snapshot.model_dump(mode="json"))
                last_sent = snapshot
            await asyncio.sleep(layout.tick_interval * layout.snapshot_every)

    sender = asyncio.create_task(send_snapshots())
    try:
        while True:
            message = await websocket.receive_json()
            try:
                layout.handle_pointer(PointerEvent.model_validate(message))
            except ValidationError as e:
                await websocket.send_json({"type": "error", "message": str(e)})
    except WebSocketDisconnect:
        logger.info("Graph websocket disconnected")
    finally:
        sender.cancel()


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
