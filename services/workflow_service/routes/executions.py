# executions.py - Monitor and cancel executions
# Serves both engines: ReAct runs are mirrored as workflow execution records.

from fastapi import APIRouter, HTTPException, Depends
import logging

from ..dependencies import get_react_engine, get_store, get_workflow_engine
from ..execution_store import ExecutionStore
from ..models import WorkflowExecution
from ..react_engine import ReActEngine
from ..workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/executions", tags=["executions"])

@router.get("/{execution_id}", response_model=WorkflowExecution)
async def get_execution(
    execution_id: str,
    store: ExecutionStore = Depends(get_store)
):
    """Get workflow execution details."""
    try:
        execution = await store.get_execution(execution_id)
        if not execution:
            raise HTTPException(status_code=404, detail="Execution not found")

        return execution

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get execution {execution_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{execution_id}/cancel")
async def cancel_execution(
    execution_id: str,
    store: ExecutionStore = Depends(get_store),
    workflow_engine: WorkflowEngine = Depends(get_workflow_engine),
    react_engine: ReActEngine = Depends(get_react_engine)
):
    """Cancel a pending or running execution."""
    try:
        execution = await store.get_execution(execution_id)
        if not execution:
            raise HTTPException(status_code=404, detail="Execution not found")

        if await store.get_react_state(execution_id) is not None:
            cancelled = await react_engine.cancel_execution(execution_id)
        else:
            cancelled = await workflow_engine.cancel_execution(execution_id)

        if not cancelled:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot cancel execution with status: {execution.status.value}"
            )

        return {"message": f"Execution {execution_id} cancelled successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to cancel execution {execution_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
