"""Observer sink for interpreter output."""

import logging
from enum import Enum
from typing import Any, Dict, List
from pydantic import BaseModel, Field


class ChatEventType(str, Enum):
    SESSION_STARTED = "session_started"
    BOT_MESSAGE = "bot_message"
    WAITING_INPUT = "waiting_input"
    SESSION_ENDED = "session_ended"
    ERROR = "error"


class ChatEvent(BaseModel):
    type: ChatEventType
    session_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class EventSink:
    """Receives events in the order the interpreter produces them"""

    async def emit(self, event: ChatEvent) -> None:
        return None


async def deliver(sink: EventSink, event: ChatEvent) -> None:
    """Emits without letting a failing observer interrupt the session"""
    try:
        await sink.emit(event)
    except Exception:
        logging.warning(
            f"Event sink failed on {event.type.value}",
            exc_info=True,
            extra={"session_id": event.session_id}
        )


class NullSink(EventSink):
    pass


class CollectingSink(EventSink):
    """Buffers events in memory"""

    def __init__(self):
        self.events: List[ChatEvent] = []

    async def emit(self, event: ChatEvent) -> None:
        self.events.append(event)
