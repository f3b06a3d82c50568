"""Node handlers, one per node type."""

import asyncio
import logging
from services.chat.engine.conditions import evaluate_condition
from services.chat.engine.registry import RunState, Transition, register_node_handler
from services.chat.engine.template import interpolate
from shared.constants import DEFAULT_INPUT_PROMPT
from shared.exceptions import ApiCallError, FatalApiCallError
from shared.types import (
    ApiNodeData,
    ConditionNodeData,
    DelayNodeData,
    EndNodeData,
    InputNodeData,
    JumpNodeData,
    MessageNodeData,
    Node,
    NodeType,
    SessionStatus,
)


@register_node_handler(NodeType.START)
async def start_handler(run: RunState, node: Node) -> Transition:
    return run.follow_default_edge(node.id)


@register_node_handler(NodeType.MESSAGE)
async def message_handler(run: RunState, node: Node) -> Transition:
    data = MessageNodeData.model_validate(node.data)
    content = interpolate(data.message or "", run.context.variables)
    metadata = {"richContent": data.rich_content} if data.rich_content else None

    await run.say(content, node.id, metadata)
    return run.follow_default_edge(node.id)


@register_node_handler(NodeType.INPUT)
async def input_handler(run: RunState, node: Node) -> Transition:
    data = InputNodeData.model_validate(node.data)
    prompt = data.message or data.placeholder or DEFAULT_INPUT_PROMPT

    await run.say(prompt, node.id, {
        "inputType": data.input_type,
        "placeholder": data.placeholder,
        "choices": data.choices,
    })

    run.context.waiting_for_input = True
    run.context.input_node_id = node.id
    return Transition.suspend()


@register_node_handler(NodeType.CONDITION)
async def condition_handler(run: RunState, node: Node) -> Transition:
    data = ConditionNodeData.model_validate(node.data)

    # First match wins, in authoring order
    for condition in data.conditions:
        value = run.context.variables.get(condition.variable) if condition.variable else None
        if evaluate_condition(value, condition.operator, condition.value) and condition.target_node_id:
            return Transition.goto(condition.target_node_id)

    if data.default_target:
        return Transition.goto(data.default_target)

    return run.follow_default_edge(node.id)


@register_node_handler(NodeType.API)
async def api_handler(run: RunState, node: Node) -> Transition:
    config = ApiNodeData.model_validate(node.data).api_config

    try:
        response = await run.http_client.call(
            config.method,
            config.url,
            headers=config.headers,
            body=config.body,
            timeout=config.timeout
        )
    except FatalApiCallError:
        raise
    except ApiCallError as e:
        logging.warning("API node call failed, continuing", extra={
            "node_id": node.id,
            "url": config.url,
            "error": e.failure.to_dict()
        })
        await run.say(f"API call to {config.url} failed: {e.message}", node.id, {"error": True})
        return run.follow_default_edge(node.id)

    if config.response_variable:
        run.context.variables[config.response_variable] = response.model_dump()

    await run.say(f"API call to {config.url} completed successfully.", node.id)
    return run.follow_default_edge(node.id)


@register_node_handler(NodeType.DELAY)
async def delay_handler(run: RunState, node: Node) -> Transition:
    data = DelayNodeData.model_validate(node.data)

    if data.display_message:
        await run.say(data.display_message, node.id)
        await run.persist()

    delay_ms = max(data.delay or 0, 0)
    if delay_ms:
        await asyncio.sleep(delay_ms / 1000)

    return run.follow_default_edge(node.id)


@register_node_handler(NodeType.JUMP)
async def jump_handler(run: RunState, node: Node) -> Transition:
    data = JumpNodeData.model_validate(node.data)
    if not data.target_node_id:
        return Transition.terminate(SessionStatus.ERROR, "Jump node has no target")
    return Transition.goto(data.target_node_id)


@register_node_handler(NodeType.END)
async def end_handler(run: RunState, node: Node) -> Transition:
    data = EndNodeData.model_validate(node.data)
    if data.message:
        await run.say(data.message, node.id)
    return Transition.terminate(SessionStatus.COMPLETED)
