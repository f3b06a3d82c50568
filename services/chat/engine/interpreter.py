"""Flow interpreter: walks a flow graph for one chat session at a time."""

import copy
import logging
import os
from typing import Any, Dict, Optional
from pydantic import ValidationError
from services.chat.engine.input_validation import coerce_to_declared_type, validate_input
from services.chat.engine.registry import RunState, TransitionKind, get_node_handler, missing_node_types
from services.chat.events import ChatEvent, ChatEventType, EventSink, NullSink, deliver
from services.chat.infra.http_client import HttpClient
from shared.constants import FATAL_ERROR_MESSAGE, MAX_STEPS_PER_RUN
from shared.exceptions import (
    FlowNotActiveError,
    FlowNotFoundError,
    InvalidInputNodeError,
    NoStartNodeError,
    NodeExecutionError,
    NotWaitingForInputError,
    SessionNotFoundError,
    StepBudgetExceededError,
)
from shared.logging_config import set_session_id
from shared.types import (
    ChatMessage,
    ExecutionContext,
    Flow,
    FlowStatus,
    InputNodeData,
    MessageRole,
    NodeType,
    SessionStatus,
)
from shared.utils import generate_id, utcnow
import services.chat.engine.handlers  # noqa: F401  registers node handlers


class FlowInterpreter:
    """Runs sessions node by node until they wait for input or end.

    The interpreter never locks: callers must not advance the same session
    from two tasks at once. Distinct sessions may run concurrently.
    """

    def __init__(self, flow_repository, session_store, http_client=None, max_steps: Optional[int] = None):
        missing = missing_node_types()
        if missing:
            raise RuntimeError(f"No handler registered for node types: {', '.join(missing)}")

        self.flows = flow_repository
        self.sessions = session_store
        self.http_client = http_client or HttpClient()
        self.max_steps = max_steps or int(os.getenv("CHAT_MAX_STEPS_PER_RUN", MAX_STEPS_PER_RUN))
        # Write-through cache of live sessions, evicted on terminal status
        self.active_sessions: Dict[str, ExecutionContext] = {}

    async def start_session(
        self,
        flow: Flow,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        sink: Optional[EventSink] = None
    ) -> ExecutionContext:
        sink = sink or NullSink()

        if flow.status != FlowStatus.ACTIVE:
            raise FlowNotActiveError("Flow is not active", flow_id=flow.id)

        start_node = flow.find_start_node()
        if start_node is None:
            raise NoStartNodeError("Flow has no start node", flow_id=flow.id)

        context = ExecutionContext(
            session_id=generate_id(),
            flow_id=flow.id,
            user_id=user_id,
            current_node_id=start_node.id,
            variables=self._initial_variables(flow),
            metadata=metadata
        )
        set_session_id(context.session_id)

        logging.info("Starting new session", extra={"flow_id": flow.id, "session_id": context.session_id})

        await self.sessions.create(context)
        self.active_sessions[context.session_id] = context
        await deliver(sink, ChatEvent(
            type=ChatEventType.SESSION_STARTED,
            session_id=context.session_id,
            payload={"flowId": flow.id}
        ))

        await self._run(flow, context, sink)
        return context

    async def process_user_input(
        self,
        context: ExecutionContext,
        raw_input: str,
        sink: Optional[EventSink] = None
    ) -> ExecutionContext:
        sink = sink or NullSink()
        set_session_id(context.session_id)

        if not context.waiting_for_input:
            raise NotWaitingForInputError("Not waiting for input", session_id=context.session_id)

        flow = await self.flows.find_by_id(context.flow_id)
        if flow is None:
            raise FlowNotFoundError("Flow not found", flow_id=context.flow_id)

        input_node = flow.get_node(context.input_node_id)
        if input_node is None or input_node.type != NodeType.INPUT.value:
            raise InvalidInputNodeError("Invalid input node", node_id=context.input_node_id)

        try:
            node_data = InputNodeData.model_validate(input_node.data)
        except ValidationError as e:
            raise InvalidInputNodeError(f"Invalid input node: {e}", node_id=input_node.id)

        self.active_sessions[context.session_id] = context
        run = RunState(flow, context, self.http_client, sink, lambda: self._persist(context))

        result = validate_input(raw_input, node_data)
        if result.is_valid and node_data.variable_name:
            declared = flow.declared_variable(node_data.variable_name)
            if declared is not None:
                result = coerce_to_declared_type(result.value, declared.type)

        if not result.is_valid:
            logging.info("Input rejected", extra={"node_id": input_node.id, "reason": result.error})
            await run.say(result.error or "Invalid input", input_node.id)
            await self._persist(context)
            await self._emit_waiting(context, sink)
            return context

        if node_data.variable_name:
            context.variables[node_data.variable_name] = result.value

        context.messages.append(ChatMessage(role=MessageRole.USER, content=raw_input, node_id=input_node.id))
        context.waiting_for_input = False
        context.input_node_id = None

        next_node_id = flow.next_node_id(input_node.id)
        if next_node_id:
            context.current_node_id = next_node_id
            await self._run(flow, context, sink)
        else:
            await self._end_session(context, SessionStatus.COMPLETED, sink)

        return context

    async def get_session(self, session_id: str) -> ExecutionContext:
        context = self.active_sessions.get(session_id)
        if context is not None:
            return context

        context = await self.sessions.find_by_session_id(session_id)
        if context is None:
            raise SessionNotFoundError("Session not found", session_id=session_id)
        return context

    async def reset_session(self, session_id: str, sink: Optional[EventSink] = None) -> ExecutionContext:
        """Abandons the session and starts a fresh one on the same flow"""
        sink = sink or NullSink()
        old_context = await self.get_session(session_id)

        flow = await self.flows.find_by_id(old_context.flow_id)
        if flow is None:
            raise FlowNotFoundError("Flow not found", flow_id=old_context.flow_id)

        if not old_context.is_terminal:
            await self._end_session(old_context, SessionStatus.ABANDONED, sink)

        return await self.start_session(flow, old_context.user_id, old_context.metadata, sink)

    async def _run(self, flow: Flow, context: ExecutionContext, sink: EventSink) -> None:
        """Trampoline: one handler per iteration until suspend or terminate"""
        run = RunState(flow, context, self.http_client, sink, lambda: self._persist(context))
        steps = 0

        while True:
            if steps >= self.max_steps:
                error = await self._abort(
                    context, sink, f"Exceeded {self.max_steps} node transitions in a single run",
                    context.current_node_id, StepBudgetExceededError
                )
                raise error
            steps += 1

            node = flow.get_node(context.current_node_id)
            if node is None:
                raise await self._abort(context, sink, f"Node {context.current_node_id} not found", context.current_node_id)

            logging.debug("Executing node", extra={"node_id": node.id, "node_type": node.type})

            try:
                handler = get_node_handler(node.type)
                transition = await handler(run, node)
            except Exception as e:
                error = await self._abort(context, sink, f"Error executing node {node.id}: {e}", node.id, exc=e)
                raise error from e

            if transition.kind == TransitionKind.GOTO:
                context.current_node_id = transition.target
                await self._persist(context)
                continue

            if transition.kind == TransitionKind.SUSPEND:
                await self._persist(context)
                await self._emit_waiting(context, sink)
                return

            if transition.status == SessionStatus.ERROR:
                raise await self._abort(context, sink, transition.reason or f"Node {node.id} failed", node.id)

            await self._end_session(context, transition.status, sink)
            return

    async def _persist(self, context: ExecutionContext) -> None:
        await self.sessions.update_by_session_id(context.session_id, {
            "current_node_id": context.current_node_id,
            "messages": context.messages,
            "variables": context.variables,
            "status": context.status,
            "waiting_for_input": context.waiting_for_input,
            "input_node_id": context.input_node_id,
        })

    async def _emit_waiting(self, context: ExecutionContext, sink: EventSink) -> None:
        await deliver(sink, ChatEvent(
            type=ChatEventType.WAITING_INPUT,
            session_id=context.session_id,
            payload={"nodeId": context.input_node_id}
        ))

    async def _end_session(self, context: ExecutionContext, status: SessionStatus, sink: EventSink) -> None:
        logging.info(f"Ending session with status: {status.value}", extra={"session_id": context.session_id})

        context.status = status
        context.waiting_for_input = False
        context.input_node_id = None
        context.ended_at = utcnow()
        context.duration = int((context.ended_at - context.started_at).total_seconds())

        await self.sessions.update_by_session_id(context.session_id, {
            "current_node_id": context.current_node_id,
            "messages": context.messages,
            "variables": context.variables,
            "status": status,
            "waiting_for_input": False,
            "input_node_id": None,
            "ended_at": context.ended_at,
            "duration": context.duration,
        })
        self.active_sessions.pop(context.session_id, None)

        await deliver(sink, ChatEvent(
            type=ChatEventType.SESSION_ENDED,
            session_id=context.session_id,
            payload={"status": status.value}
        ))

    async def _abort(
        self,
        context: ExecutionContext,
        sink: EventSink,
        reason: str,
        node_id: Optional[str],
        error_class=NodeExecutionError,
        exc: Optional[Exception] = None
    ) -> NodeExecutionError:
        """Ends the session as error and builds the failure for the triggering caller"""
        logging.error(reason, exc_info=exc, extra={
            "session_id": context.session_id,
            "flow_id": context.flow_id,
            "node_id": node_id
        })

        context.messages.append(ChatMessage(role=MessageRole.SYSTEM, content=FATAL_ERROR_MESSAGE, node_id=node_id))
        await deliver(sink, ChatEvent(
            type=ChatEventType.ERROR,
            session_id=context.session_id,
            payload={"message": FATAL_ERROR_MESSAGE, "nodeId": node_id}
        ))
        await self._end_session(context, SessionStatus.ERROR, sink)

        return error_class(reason, execution_context=context, session_id=context.session_id, node_id=node_id)

    @staticmethod
    def _initial_variables(flow: Flow) -> Dict[str, Any]:
        """Declared flow variables that carry a default start out bound"""
        return {
            variable.name: copy.deepcopy(variable.default_value)
            for variable in flow.variables
            if variable.default_value is not None
        }
