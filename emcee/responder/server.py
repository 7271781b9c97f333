"""
Emcee Server

FastAPI control surface for one meeting session.

Endpoints:
- GET  /health: Health check
- POST /captions: Caption event from the meeting bridge
- POST /chat: Chat event from the meeting bridge
- POST /hand: Hand state change from the meeting bridge
- GET  /responses: Responses (optionally ?status=pending)
- GET  /responses/{id}: A single response
- POST /responses/{id}/approve | reject | dismiss: Controller actions
- GET  /patterns: Available behavior patterns
- POST /patterns/current: Select the active pattern
- GET  /stats: Queue and aggregator statistics

Bridge events are signed like webhooks (X-Emcee-Signature /
X-Emcee-Request-Timestamp) when a signing secret is configured.
"""

import argparse
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..common.config import ensure_directories, load_config
from ..common.llm_client import LLMClient
from ..common.schemas import PendingResponse, ResponseStatus
from ..listener.handlers import BridgeHandler
from ..listener.pipeline import MentionPipeline
from .behavior_processor import BehaviorProcessor
from .bridge import HttpMeetingBridge, LLMResponseGenerator
from .pattern_store import PatternStore, UnknownPatternError
from .response_queue import ResponseQueue

logger = logging.getLogger("emcee.responder.server")


# =============================================================================
# Request/Response Models
# =============================================================================

class PatternSelection(BaseModel):
    """Select the active behavior pattern"""
    pattern_id: str


def _response_summary(item: PendingResponse) -> Dict[str, Any]:
    return {
        "id": item.id,
        "status": item.status.value,
        "behavior_mode": item.behavior_mode.value,
        "channel": item.response_channel.value,
        "trigger_source": item.trigger_source.value,
        "trigger_author": item.trigger_author,
        "response_text": item.response_text,
        "created_at": item.created_at.isoformat(),
    }


# =============================================================================
# App factory
# =============================================================================

def create_app(
    pipeline: MentionPipeline,
    handler: Optional[BridgeHandler] = None,
    on_shutdown: Optional[Callable[[], Awaitable[None]]] = None,
) -> FastAPI:
    """
    Build the control app around an existing pipeline.

    Args:
        pipeline: Session pipeline (owns aggregator and processor)
        handler: Parses and verifies bridge events (unsigned by default)
        on_shutdown: Extra cleanup, e.g. closing the bridge client
    """
    handler = handler or BridgeHandler()
    processor: BehaviorProcessor = pipeline.processor

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Emcee ready for %r (pattern: %s)",
            processor.agent_name, processor.patterns.current_id,
        )
        yield
        logger.info("Shutting down...")
        await pipeline.aclose()
        if on_shutdown is not None:
            await on_shutdown()

    app = FastAPI(
        title="Emcee",
        description="Meeting mention detection and response orchestration",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    async def read_event(request: Request, signature: Optional[str], timestamp: Optional[str]) -> Dict[str, Any]:
        body = await request.body()

        if not handler.verify_signature(body, signature or "", timestamp or ""):
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Invalid JSON")

        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="Event must be a JSON object")
        return data

    def get_response_or_404(response_id: str) -> PendingResponse:
        item = processor.queue.get_item(response_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Response not found")
        return item

    # -------------------------------------------------------------------------
    # Ingest
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        hybrid = pipeline.hybrid
        return {
            "status": "healthy",
            "service": "emcee",
            "agent": processor.agent_name,
            "pattern": processor.patterns.current_id,
            "hybrid_available": hybrid.is_available if hybrid else False,
            "pending_responses": processor.queue.get_stats().pending,
        }

    @app.post("/captions")
    async def captions(
        request: Request,
        x_emcee_signature: Optional[str] = Header(None),
        x_emcee_request_timestamp: Optional[str] = Header(None),
    ):
        data = await read_event(request, x_emcee_signature, x_emcee_request_timestamp)
        entry = handler.parse_caption(data)
        if entry is None:
            return JSONResponse({"ok": True, "processed": False})

        await pipeline.on_caption(entry)
        return JSONResponse({"ok": True, "processed": True})

    @app.post("/chat")
    async def chat(
        request: Request,
        background_tasks: BackgroundTasks,
        x_emcee_signature: Optional[str] = Header(None),
        x_emcee_request_timestamp: Optional[str] = Header(None),
    ):
        data = await read_event(request, x_emcee_signature, x_emcee_request_timestamp)
        message = handler.parse_chat(data)
        if message is None or not handler.should_process_chat(message, processor.agent_name):
            return JSONResponse({"ok": True, "processed": False})

        # Generation and delivery can take seconds; acknowledge first
        background_tasks.add_task(pipeline.on_chat, message)
        return JSONResponse({"ok": True, "processed": True})

    @app.post("/hand")
    async def hand(
        request: Request,
        background_tasks: BackgroundTasks,
        x_emcee_signature: Optional[str] = Header(None),
        x_emcee_request_timestamp: Optional[str] = Header(None),
    ):
        data = await read_event(request, x_emcee_signature, x_emcee_request_timestamp)
        raised = handler.parse_hand_state(data)
        if raised is None:
            raise HTTPException(status_code=400, detail="Missing boolean 'raised'")

        background_tasks.add_task(pipeline.on_hand_state, raised)
        return JSONResponse({"ok": True})

    # -------------------------------------------------------------------------
    # Responses
    # -------------------------------------------------------------------------

    @app.get("/responses")
    async def list_responses(status: Optional[str] = None):
        if status:
            try:
                items = processor.queue.get_by_status(ResponseStatus(status))
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
        else:
            items = processor.queue.list()

        return {
            "count": len(items),
            "items": [_response_summary(item) for item in items],
        }

    @app.get("/responses/{response_id}")
    async def get_response(response_id: str):
        item = get_response_or_404(response_id)
        return {
            **item.model_dump(mode="json"),
            "formatted": processor.queue.format_for_review(item),
        }

    @app.post("/responses/{response_id}/approve")
    async def approve_response(response_id: str):
        get_response_or_404(response_id)
        item = await processor.approve_response(response_id)
        if item is None:
            raise HTTPException(status_code=409, detail="Response cannot be approved")
        return {"id": item.id, "status": item.status.value, "error": item.error_message}

    @app.post("/responses/{response_id}/reject")
    async def reject_response(response_id: str):
        get_response_or_404(response_id)
        item = processor.reject_response(response_id)
        if item is None:
            raise HTTPException(status_code=409, detail="Response cannot be rejected")
        return {"id": item.id, "status": item.status.value}

    @app.post("/responses/{response_id}/dismiss")
    async def dismiss_response(response_id: str):
        get_response_or_404(response_id)
        item = await processor.dismiss_response(response_id)
        if item is None:
            raise HTTPException(status_code=409, detail="Response cannot be dismissed")
        return {"id": item.id, "status": item.status.value}

    # -------------------------------------------------------------------------
    # Patterns & stats
    # -------------------------------------------------------------------------

    @app.get("/patterns")
    async def list_patterns():
        return {
            "current": processor.patterns.current_id,
            "patterns": [p.model_dump(mode="json") for p in processor.patterns.list()],
        }

    @app.post("/patterns/current")
    async def set_current_pattern(selection: PatternSelection):
        try:
            pattern = processor.patterns.set_current(selection.pattern_id)
        except UnknownPatternError:
            raise HTTPException(status_code=404, detail="Pattern not found")
        return {"current": pattern.id, "name": pattern.name}

    @app.get("/stats")
    async def get_stats():
        """Get Emcee statistics"""
        aggregator = pipeline.aggregator
        pending_mention = aggregator.get_pending_mention()
        return {
            "service": "emcee",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "queue": processor.queue.get_stats().model_dump(),
            "hand_raised": processor.is_hand_raised,
            "pattern": processor.patterns.current_id,
            "aggregator": {
                "state": aggregator.state.value,
                "buffered": aggregator.buffered_count,
                "pending_mention": pending_mention.caption_text if pending_mention else None,
            },
        }

    return app


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Emcee server"""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()

    parser = argparse.ArgumentParser(description="Run the Emcee control server.")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address.")
    parser.add_argument("--port", type=int, default=None, help="Port (default: config server.port).")
    parser.add_argument("--pattern", default=None, help="Behavior pattern ID.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ensure_directories()
    config = load_config()
    if args.pattern:
        config.behavior.pattern_id = args.pattern
    if not config.agent.display_name:
        raise SystemExit("Agent name not configured (set EMCEE_AGENT_NAME or agent.display_name)")

    llm_client = LLMClient.from_config(config.llm)
    bridge = HttpMeetingBridge(config.server.bridge_url, timeout=config.server.bridge_timeout)
    if not config.server.bridge_url:
        logger.warning("No meeting bridge URL configured, responses cannot be delivered")

    processor = BehaviorProcessor(
        agent_name=config.agent.display_name,
        name_variations=config.agent.name_variations,
        response_generator=LLMResponseGenerator(llm_client, config.agent.display_name),
        patterns=PatternStore(config.behavior.pattern_id, Path(config.behavior.patterns_path).expanduser()),
        send_chat=bridge.send_chat,
        speak=bridge.speak,
        raise_hand=bridge.raise_hand,
        lower_hand=bridge.lower_hand,
        queue=ResponseQueue(max_size=config.behavior.max_queue_size),
        history_retention_ms=config.behavior.history_retention_ms,
    )
    pipeline = MentionPipeline.from_config(config, processor, llm_client)

    app = create_app(
        pipeline,
        handler=BridgeHandler(signing_secret=config.server.signing_secret),
        on_shutdown=bridge.close,
    )

    port = args.port or config.server.port
    logger.info("Starting server on port %d", port)
    uvicorn.run(app, host=args.host, port=port, reload=False)


if __name__ == "__main__":
    run_server()
