# workflows.py - Register and execute workflow definitions
# This file defines the API endpoints for managing static workflow definitions.

from fastapi import APIRouter, HTTPException, Depends
import logging

from ..dependencies import get_store, get_workflow_engine
from ..errors import DependencyError, ValidationError
from ..execution_store import ExecutionStore
from ..models import WorkflowDefinition, WorkflowCreateRequest, WorkflowExecutionRequest
from ..workflow_engine import WorkflowEngine, check_dependencies, validate_definition

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/workflows", tags=["workflows"])

@router.post("/", response_model=WorkflowDefinition, status_code=201)
async def create_workflow(
    request: WorkflowCreateRequest,
    store: ExecutionStore = Depends(get_store)
):
    """Register a new workflow definition."""
    try:
        workflow = WorkflowDefinition(
            name=request.name,
            description=request.description,
            version=request.version,
            steps=request.steps,
            timeout=request.timeout,
            retry_policy=request.retry_policy
        )
        validate_definition(workflow)
        check_dependencies(workflow)

        await store.store_workflow_definition(workflow)
        logger.info(f"Created workflow {workflow.id}: {workflow.name}")
        return workflow

    except (ValidationError, DependencyError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create workflow: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{workflow_id}", response_model=WorkflowDefinition)
async def get_workflow(
    workflow_id: str,
    store: ExecutionStore = Depends(get_store)
):
    """Get a specific workflow definition."""
    try:
        workflow = await store.get_workflow_definition(workflow_id)
        if not workflow:
            raise HTTPException(status_code=404, detail="Workflow not found")

        return workflow

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get workflow {workflow_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{workflow_id}/execute", status_code=202)
async def execute_workflow(
    workflow_id: str,
    request: WorkflowExecutionRequest,
    store: ExecutionStore = Depends(get_store),
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Start a workflow execution in the background."""
    try:
        workflow = await store.get_workflow_definition(workflow_id)
        if not workflow:
            raise HTTPException(status_code=404, detail="Workflow not found")

        execution_id = await engine.execute_workflow(workflow, request.input_data, request.metadata)
        return {
            "execution_id": execution_id,
            "workflow_id": workflow_id,
            "status": "pending",
            "status_url": f"/executions/{execution_id}"
        }

    except HTTPException:
        raise
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to execute workflow {workflow_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
