"""
Capture Server

FastAPI server receiving cumulative transcript chunks from the ingestion
layer.

Endpoints:
- POST /ingest/chunk: Cumulative transcript delivery
- POST /conversations/{conversation_id}/end: Conversation ended (force-stop)
- GET /conversations/{conversation_id}/artifacts: Stored charts and automations
- POST /automations/{record_id}/approve: Approve an automation and run its webhook
- POST /automations/{record_id}/status: Move an automation along its lifecycle
- GET /health: Health check

Pipeline:
1. Verify signature and parse the chunk (malformed input stops here)
2. Compute the unseen delta and advance the conversation's state machines
3. Refine completed captures / framed commands
4. Gate, map and store the result
"""

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..common.config import NeuroCueConfig, ensure_directories, load_config
from ..common.schemas import AutomationStatus
from .dispatcher import AutomationDispatcher
from .engine import TriggerEngine, build_engine
from .handlers import ChunkValidationError, TranscriptHandler
from .store import InvalidTransitionError, JsonArtifactStore

logger = logging.getLogger("neurocue.capture.server")


# Global state
config: Optional[NeuroCueConfig] = None
engine: Optional[TriggerEngine] = None
store: Optional[JsonArtifactStore] = None
transcript_handler: Optional[TranscriptHandler] = None
dispatcher: Optional[AutomationDispatcher] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, engine, store, transcript_handler, dispatcher

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting up...")

    ensure_directories()

    config = load_config()
    logger.info("Loaded config (LLM provider: %s)", config.llm.provider)

    store = JsonArtifactStore(Path(config.server.store_path) if config.server.store_path else None)
    logger.info("Artifact store ready (%d artifacts)", store.get_stats()["total"])

    engine = build_engine(config, store=store)
    transcript_handler = TranscriptHandler(signing_secret=config.server.signing_secret)
    if not config.server.signing_secret:
        logger.warning("No signing secret configured, webhook signatures are not verified")

    dispatcher = AutomationDispatcher.from_config(config.automation, store)
    if not dispatcher.is_configured:
        logger.warning("No automation webhook configured, approved automations are not executed")

    logger.info("Ready to receive chunks")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="NeuroCue Capture",
    description="Voice command capture over cumulative meeting transcripts",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request/Response Models
# =============================================================================

class StatusUpdate(BaseModel):
    """Automation status change request"""
    status: AutomationStatus


class ApprovalRequest(BaseModel):
    """Automation approval, optionally with corrected parameters"""
    parameters: Optional[Dict[str, Any]] = None


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "neurocue-capture",
        "initialized": engine is not None,
        "conversations": len(engine.conversations) if engine else 0,
        "store": store.get_stats() if store else None,
    }


@app.post("/ingest/chunk")
async def ingest_chunk(
    request: Request,
    x_neurocue_signature: Optional[str] = Header(None),
    x_neurocue_request_timestamp: Optional[str] = Header(None),
):
    """
    Handle a cumulative transcript chunk.

    The response reports the chart session status and any artifact or
    automation produced by this chunk.
    """
    if not engine or not transcript_handler:
        raise HTTPException(status_code=503, detail="Engine not initialized")

    body = await request.body()

    if not transcript_handler.verify_signature(
        body,
        x_neurocue_signature or "",
        x_neurocue_request_timestamp or "",
    ):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    try:
        chunk = transcript_handler.parse_event(data)
    except ChunkValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    outcome = await engine.on_chunk(chunk)
    return JSONResponse(outcome.to_dict())


@app.post("/conversations/{conversation_id}/end")
async def end_conversation(conversation_id: str):
    """Conversation ended: discard partial captures/commands"""
    if not engine:
        raise HTTPException(status_code=503, detail="Engine not initialized")

    discarded = await engine.force_stop(conversation_id)
    return {"conversation_id": conversation_id, "discarded": discarded}


@app.get("/conversations/{conversation_id}/artifacts")
async def get_artifacts(conversation_id: str):
    """Stored artifacts for a conversation"""
    if not store:
        raise HTTPException(status_code=503, detail="Store not initialized")

    artifacts = await store.list_artifacts(conversation_id)
    return {
        "conversation_id": conversation_id,
        "charts": [a.model_dump(mode="json") for a in artifacts if a.type == "chart"],
        "automations": [a.model_dump(mode="json") for a in artifacts if a.type == "automation"],
    }


@app.post("/automations/{record_id}/approve")
async def approve_automation(record_id: str, approval: Optional[ApprovalRequest] = None):
    """
    Approve a pending automation and post it to the workflow webhook.

    The response is the record in its resulting status: completed, failed
    (with the webhook error), or approved when no webhook is configured.
    """
    if not dispatcher:
        raise HTTPException(status_code=503, detail="Dispatcher not initialized")

    try:
        record = await dispatcher.approve(record_id, approval.parameters if approval else None)
    except KeyError:
        raise HTTPException(status_code=404, detail="Automation not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return record.model_dump(mode="json")


@app.post("/automations/{record_id}/status")
async def update_automation_status(record_id: str, update: StatusUpdate):
    """Approve, reject, trigger, complete, fail or dismiss an automation"""
    if not store:
        raise HTTPException(status_code=503, detail="Store not initialized")

    try:
        record = await store.update_status(record_id, update.status)
    except KeyError:
        raise HTTPException(status_code=404, detail="Automation not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return record.model_dump(mode="json")


# =============================================================================
# CLI Entry Point
# =============================================================================

def main():
    """Run the capture server"""
    import uvicorn

    config = load_config()
    port = config.server.port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "neurocue.capture.server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
