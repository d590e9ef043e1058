# dependencies.py - FastAPI dependency providers
# Engine instances are built once in the app lifespan and stored on app.state.

from fastapi import Request

from .execution_store import ExecutionStore
from .job_manager import JobManager
from .react_engine import ReActEngine
from .transcription_jobs import TranscriptionJobService
from .workflow_engine import WorkflowEngine

def get_store(request: Request) -> ExecutionStore:
    return request.app.state.store

def get_workflow_engine(request: Request) -> WorkflowEngine:
    return request.app.state.workflow_engine

def get_react_engine(request: Request) -> ReActEngine:
    return request.app.state.react_engine

def get_job_manager(request: Request) -> JobManager:
    return request.app.state.job_manager

def get_transcription_jobs(request: Request) -> TranscriptionJobService:
    return request.app.state.transcription_jobs
