# main.py - FastAPI app entry point for the workflow_service
# This file wires the store, event bus, invoker and both engines, and runs the FastAPI application.

import asyncio
import logging
import sys
import os
from contextlib import asynccontextmanager
from datetime import timedelta
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, project_root)

from services.workflow_service.builtin_workflows import BUILTIN_WORKFLOWS
from services.workflow_service.config import settings
from services.workflow_service.event_publisher import EventBus
from services.workflow_service.execution_store import ExecutionStore
from services.workflow_service.job_manager import JobManager
from services.workflow_service.react_engine import ReActEngine
from services.workflow_service.routes import executions, jobs, react, workflows
from services.workflow_service.step_invoker import StepInvoker
from services.workflow_service.transcription_jobs import TranscriptionJobService
from services.workflow_service.workflow_engine import WorkflowEngine

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

async def periodic_cleanup(app: FastAPI):
    """Background task to drop finished execution tasks and old jobs."""
    while True:
        try:
            await asyncio.sleep(settings.cleanup_interval)
            await app.state.workflow_engine.cleanup_completed_executions()
            await app.state.react_engine.cleanup_completed_executions()
            app.state.job_manager.cleanup_old_jobs(timedelta(seconds=settings.execution_ttl_seconds))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Periodic cleanup failed: {str(e)}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info(f"Starting {settings.service_name} on port {settings.service_port}")

    store = ExecutionStore(redis_url=settings.redis_url, ttl_seconds=settings.execution_ttl_seconds)
    try:
        await store.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {str(e)}")
        raise

    event_bus = EventBus(store.redis_client, channel=settings.events_channel)
    invoker = StepInvoker(settings.capability_endpoints())
    job_manager = JobManager(event_bus)

    app.state.store = store
    app.state.event_bus = event_bus
    app.state.invoker = invoker
    app.state.workflow_engine = WorkflowEngine(store, event_bus, invoker)
    app.state.react_engine = ReActEngine(store, event_bus, invoker, max_iterations=settings.react_max_iterations)
    app.state.job_manager = job_manager
    app.state.transcription_jobs = TranscriptionJobService(job_manager, invoker)

    for factory in BUILTIN_WORKFLOWS:
        workflow = factory()
        await store.store_workflow_definition(workflow)
        logger.info(f"Registered built-in workflow {workflow.id}")

    cleanup_task = asyncio.create_task(periodic_cleanup(app))
    logger.info("Started periodic cleanup task")

    yield

    # Shutdown
    logger.info("Shutting down workflow service...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await app.state.workflow_engine.shutdown()
    await app.state.react_engine.shutdown()
    await app.state.transcription_jobs.shutdown()
    await invoker.close()
    await store.close()

    logger.info("Workflow service shutdown complete")

# Create FastAPI app
app = FastAPI(
    title="Workflow Orchestration Service",
    description="Runs static step pipelines and goal-driven ReAct executions against capability services",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(workflows.router)
app.include_router(executions.router)
app.include_router(react.router)
app.include_router(jobs.router)

@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }

@app.get("/health")
async def health_check(request: Request):
    """Report Redis and capability service health."""
    state = request.app.state
    try:
        await state.store.ping()
        redis_status = "healthy"
    except Exception:
        redis_status = "unhealthy"

    services = await state.invoker.check_health()
    overall_status = "healthy" if redis_status == "healthy" else "degraded"

    return {
        "status": overall_status,
        "service": settings.service_name,
        "components": {
            "redis": redis_status,
            **services
        },
        "running_executions": (
            len(state.workflow_engine.get_running_executions())
            + len(state.react_engine.get_running_executions())
        ),
        "active_jobs": len(state.job_manager.get_active_jobs())
    }

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.service_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
