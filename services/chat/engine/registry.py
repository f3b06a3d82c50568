"""Node handler registry and the per-run state handlers operate on."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from services.chat.events import ChatEvent, ChatEventType, EventSink, deliver
from shared.exceptions import NodeExecutionError
from shared.types import ChatMessage, ExecutionContext, Flow, MessageRole, Node, NodeType, SessionStatus


class TransitionKind(str, Enum):
    GOTO = "goto"
    SUSPEND = "suspend"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class Transition:
    """What the interpreter does after a handler returns"""
    kind: TransitionKind
    target: Optional[str] = None
    status: Optional[SessionStatus] = None
    reason: Optional[str] = None

    @classmethod
    def goto(cls, target: str) -> "Transition":
        return cls(TransitionKind.GOTO, target=target)

    @classmethod
    def suspend(cls) -> "Transition":
        return cls(TransitionKind.SUSPEND)

    @classmethod
    def terminate(cls, status: SessionStatus, reason: Optional[str] = None) -> "Transition":
        return cls(TransitionKind.TERMINATE, status=status, reason=reason)


@dataclass
class RunState:
    flow: Flow
    context: ExecutionContext
    http_client: Any
    sink: EventSink
    persist: Callable[[], Awaitable[None]]

    async def say(self, content: str, node_id: str, metadata: Optional[Dict[str, Any]] = None) -> ChatMessage:
        message = ChatMessage(role=MessageRole.BOT, content=content, node_id=node_id, metadata=metadata)
        self.context.messages.append(message)
        await deliver(self.sink, ChatEvent(
            type=ChatEventType.BOT_MESSAGE,
            session_id=self.context.session_id,
            payload={"message": message.to_wire()}
        ))
        return message

    def follow_default_edge(self, node_id: str) -> Transition:
        next_node_id = self.flow.next_node_id(node_id)
        if next_node_id:
            return Transition.goto(next_node_id)
        return Transition.terminate(SessionStatus.COMPLETED)


NodeHandler = Callable[[RunState, Node], Awaitable[Transition]]
_node_handlers: Dict[str, NodeHandler] = {}


def register_node_handler(node_type: NodeType):
    def decorator(func: NodeHandler):
        _node_handlers[node_type.value] = func
        return func
    return decorator


def get_node_handler(node_type: str) -> NodeHandler:
    if node_type not in _node_handlers:
        raise NodeExecutionError(f"Unknown node type: {node_type}")
    return _node_handlers[node_type]


def missing_node_types() -> List[str]:
    return [node_type.value for node_type in NodeType if node_type.value not in _node_handlers]
