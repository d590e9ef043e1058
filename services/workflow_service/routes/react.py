# react.py - Goal-driven ReAct executions
# This file defines the API endpoints for starting, tracing and cancelling ReAct runs.

from fastapi import APIRouter, HTTPException, Depends
import logging

from ..dependencies import get_react_engine
from ..errors import ValidationError
from ..models import ExecutionMetadata
from ..react_engine import ReActEngine
from ..react_models import GoalIntent, GoalKind, ReActRequest, ReActTrace, TranscriptionRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/react", tags=["react"])

def _accepted(execution_id: str) -> dict:
    return {
        "execution_id": execution_id,
        "status": "pending",
        "status_url": f"/executions/{execution_id}",
        "trace_url": f"/react/{execution_id}/trace"
    }

@router.post("/", status_code=202)
async def start_goal(
    request: ReActRequest,
    engine: ReActEngine = Depends(get_react_engine)
):
    """Start a ReAct run toward an arbitrary goal."""
    try:
        execution_id = await engine.execute_goal(request.goal, request.context, request.metadata)
        return _accepted(execution_id)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start ReAct execution: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/transcription", status_code=202)
async def start_transcription(
    request: TranscriptionRequest,
    engine: ReActEngine = Depends(get_react_engine)
):
    """Start a ReAct transcription run for a media URL."""
    try:
        options = request.options
        intent = GoalIntent(
            kind=GoalKind.TRANSCRIPTION,
            source_url=request.source_url,
            enhance_text=options.enhance_text,
            language=options.language
        )
        # The planner reads quality, format and enhancement flags from the top level
        context = {"source_url": request.source_url, **options.model_dump()}
        metadata = ExecutionMetadata(
            user_id=request.user_id,
            priority=options.priority,
            tags=options.tags
        )

        execution_id = await engine.execute_goal(
            f"Transcribe media from {request.source_url}", context, metadata, intent
        )
        return _accepted(execution_id)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start transcription run: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{execution_id}/trace", response_model=ReActTrace)
async def get_trace(
    execution_id: str,
    engine: ReActEngine = Depends(get_react_engine)
):
    """Get the reasoning trace, action history and observations of a run."""
    try:
        trace = await engine.get_trace(execution_id)
        if not trace:
            raise HTTPException(status_code=404, detail="ReAct execution not found")

        return trace

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get trace {execution_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{execution_id}/cancel")
async def cancel_run(
    execution_id: str,
    engine: ReActEngine = Depends(get_react_engine)
):
    """Cancel a running ReAct execution."""
    try:
        state = await engine.get_state(execution_id)
        if not state:
            raise HTTPException(status_code=404, detail="ReAct execution not found")

        if not await engine.cancel_execution(execution_id):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot cancel execution with status: {state.status.value}"
            )

        return {"message": f"Execution {execution_id} cancelled successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to cancel ReAct execution {execution_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
