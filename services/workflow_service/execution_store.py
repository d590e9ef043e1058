# execution_store.py - Redis-based execution state storage
# This file contains logic for storing and retrieving workflow definitions, executions and ReAct state.

import logging
from typing import Optional

import redis.asyncio as aioredis
from pydantic import ValidationError as PydanticValidationError

from .errors import StoreError
from .models import WorkflowDefinition, WorkflowExecution
from .react_models import ReActState

logger = logging.getLogger(__name__)

DEFINITION_KEY = "workflow:def:{}"
EXECUTION_KEY = "workflow:execution:{}"
REACT_STATE_KEY = "react:state:{}"

class ExecutionStore:
    """Keyed, expiring persistence for execution records.

    Writes are last-write-wins upserts. Exactly one engine loop owns a given
    execution id, so no optimistic concurrency control is applied.
    """

    def __init__(self, redis_client=None, redis_url: str = "redis://localhost:6379/1",
                 ttl_seconds: int = 24 * 3600):
        self.redis_client = redis_client or aioredis.from_url(redis_url, decode_responses=True)
        self.ttl_seconds = ttl_seconds

    async def ping(self) -> bool:
        return bool(await self.redis_client.ping())

    async def close(self):
        await self.redis_client.aclose()

    # Workflow Definitions
    async def store_workflow_definition(self, workflow: WorkflowDefinition):
        """Store workflow definition. Definitions do not expire."""
        await self.redis_client.set(DEFINITION_KEY.format(workflow.id), workflow.model_dump_json())
        logger.info(f"Stored workflow definition {workflow.id}")

    async def get_workflow_definition(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return await self._load(DEFINITION_KEY.format(workflow_id), WorkflowDefinition)

    # Workflow Executions
    async def store_execution(self, execution: WorkflowExecution):
        """Upsert a workflow execution record with the configured expiry."""
        await self._save(EXECUTION_KEY.format(execution.id), execution.model_dump_json(), execution.id)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self._load(EXECUTION_KEY.format(execution_id), WorkflowExecution)

    # ReAct State
    async def store_react_state(self, state: ReActState):
        """Upsert a ReAct state record with the configured expiry."""
        await self._save(REACT_STATE_KEY.format(state.execution_id), state.model_dump_json(),
                         state.execution_id)

    async def get_react_state(self, execution_id: str) -> Optional[ReActState]:
        return await self._load(REACT_STATE_KEY.format(execution_id), ReActState)

    async def _save(self, key: str, payload: str, record_id: str):
        try:
            await self.redis_client.set(key, payload, ex=self.ttl_seconds)
        except Exception as e:
            logger.error(f"Failed to store record {record_id}: {str(e)}")
            raise StoreError(f"Failed to store record {record_id}: {str(e)}") from e

    async def _load(self, key: str, model):
        raw = await self.redis_client.get(key)
        if not raw:
            return None

        try:
            return model.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Malformed record under {key}: {str(e)}")
            raise StoreError(f"Malformed record under {key}") from e
