# event_publisher.py - Lifecycle event bus for the workflow service
# Listeners are notified in-process first, then the event is fanned out over Redis pub/sub.

import logging
from typing import Any, Callable, List, Optional

from .models import WorkflowEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[WorkflowEvent], None]

class EventBus:
    """Fire-and-forget lifecycle notifications.

    Listeners run synchronously, in subscription order, right after the state
    mutation the event reports. Delivery over Redis is best effort: no
    delivery guarantee, no ordering guarantee across subscribers.
    """

    def __init__(self, redis_client=None, channel: str = "workflow:events"):
        self.redis_client = redis_client
        self.channel = channel
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, event: WorkflowEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed for {event.type}: {str(e)}")

        if self.redis_client is None:
            return

        try:
            await self.redis_client.publish(self.channel, event.model_dump_json())
        except Exception as e:
            logger.warning(f"Failed to publish event {event.type} for {event.execution_id}: {str(e)}")

    async def emit(self, event_type: str, execution_id: str,
                   step_id: Optional[str] = None, **data: Any):
        """Build and publish an event in one call."""
        await self.publish(WorkflowEvent(
            type=event_type,
            execution_id=execution_id,
            step_id=step_id,
            data=data,
        ))
