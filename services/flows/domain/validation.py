"""Flow structure validation and cycle detection."""

from typing import Dict, List, Set, Any
from shared.constants import ACTIVATION_BLOCKING_CODES, MAX_DELAY_MS
from shared.types import Flow, NodeType, ValidationIssue, ValidationResult


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def validate_flow(flow: Flow) -> ValidationResult:
    """Checks a flow for structural and semantic problems.

    Errors make the flow invalid; warnings are advisory only. The result is
    deterministic for identical input and the flow is never modified.
    """
    if not flow.nodes:
        return ValidationResult(
            is_valid=True,
            warnings=[ValidationIssue(code="EMPTY_FLOW", message="Flow has no nodes")]
        )

    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    validate_nodes(flow, errors, warnings)

    if flow.edges:
        validate_edges(flow, errors, warnings)

    validate_flow_structure(flow, warnings)

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_for_activation(flow: Flow) -> ValidationResult:
    """Only the errors that make a flow unsafe to run block activation"""
    result = validate_flow(flow)
    blocking = [issue for issue in result.errors if issue.code in ACTIVATION_BLOCKING_CODES]
    return ValidationResult(is_valid=not blocking, errors=blocking, warnings=result.warnings)


def validate_nodes(flow: Flow, errors: List[ValidationIssue], warnings: List[ValidationIssue]) -> None:
    node_ids: Set[str] = set()
    start_count = end_count = 0

    for node in flow.nodes:
        if node.id in node_ids:
            errors.append(ValidationIssue(
                code="DUPLICATE_NODE_ID", message=f"Duplicate node ID: {node.id}", node_id=node.id
            ))
        node_ids.add(node.id)

        if node.type == NodeType.START.value:
            start_count += 1
        elif node.type == NodeType.END.value:
            end_count += 1

        validate_node_data(node.id, node.type, node.data or {}, errors, warnings)

    if start_count == 0:
        errors.append(ValidationIssue(code="NO_START_NODE", message="Flow must have a start node"))
    elif start_count > 1:
        errors.append(ValidationIssue(code="MULTIPLE_START_NODES", message="Flow can only have one start node"))

    if end_count == 0:
        warnings.append(ValidationIssue(code="NO_END_NODE", message="Flow should have at least one end node"))


def validate_node_data(
    node_id: str,
    node_type: str,
    data: Dict[str, Any],
    errors: List[ValidationIssue],
    warnings: List[ValidationIssue]
) -> None:
    """Per-kind required field checks on the raw node payload"""

    def error(code: str, message: str) -> None:
        errors.append(ValidationIssue(code=code, message=message, node_id=node_id))

    def warning(code: str, message: str) -> None:
        warnings.append(ValidationIssue(code=code, message=message, node_id=node_id))

    if node_type == NodeType.MESSAGE.value:
        if not data.get("message") and not data.get("richContent"):
            error("EMPTY_MESSAGE", "Message node must have content")

    elif node_type == NodeType.INPUT.value:
        if not data.get("variableName"):
            warning("NO_VARIABLE_NAME", "Input node should store result in a variable")
        if not data.get("inputType"):
            error("NO_INPUT_TYPE", "Input node must specify input type")

    elif node_type == NodeType.CONDITION.value:
        conditions = _as_list(data.get("conditions"))
        if not conditions:
            error("NO_CONDITIONS", "Condition node must have at least one condition")
        for condition in conditions:
            if not isinstance(condition, dict):
                condition = {}
            if not condition.get("variable"):
                error("CONDITION_NO_VARIABLE", "Condition must specify a variable")
            if not condition.get("operator"):
                error("CONDITION_NO_OPERATOR", "Condition must specify an operator")

    elif node_type == NodeType.API.value:
        api_config = _as_dict(data.get("apiConfig"))
        if not api_config.get("url"):
            error("API_NO_URL", "API node must have a URL")
        if not api_config.get("method"):
            error("API_NO_METHOD", "API node must have a method")

    elif node_type == NodeType.DELAY.value:
        delay = data.get("delay")
        if delay is None:
            error("DELAY_NO_DURATION", "Delay node must have a duration")
        elif not isinstance(delay, (int, float)) or isinstance(delay, bool):
            error("DELAY_NO_DURATION", "Delay duration must be a number of milliseconds")
        elif delay < 0:
            error("DELAY_NEGATIVE", "Delay duration cannot be negative")
        elif delay > MAX_DELAY_MS:
            warning("DELAY_TOO_LONG", "Delay is longer than 5 minutes")

    elif node_type == NodeType.JUMP.value:
        if not data.get("targetNodeId"):
            error("JUMP_NO_TARGET", "Jump node must have a target node")


def validate_edges(flow: Flow, errors: List[ValidationIssue], warnings: List[ValidationIssue]) -> None:
    node_ids = {node.id for node in flow.nodes}
    conditional_ids = {node.id for node in flow.nodes if node.type == NodeType.CONDITION.value}
    edge_ids: Set[str] = set()
    outgoing_count: Dict[str, int] = {}

    for edge in flow.edges:
        if edge.id in edge_ids:
            errors.append(ValidationIssue(
                code="DUPLICATE_EDGE_ID", message=f"Duplicate edge ID: {edge.id}", edge_id=edge.id
            ))
        edge_ids.add(edge.id)

        if edge.source not in node_ids:
            errors.append(ValidationIssue(
                code="INVALID_EDGE_SOURCE",
                message=f"Edge references non-existent source node: {edge.source}",
                edge_id=edge.id
            ))

        if edge.target not in node_ids:
            errors.append(ValidationIssue(
                code="INVALID_EDGE_TARGET",
                message=f"Edge references non-existent target node: {edge.target}",
                edge_id=edge.id
            ))

        if edge.source == edge.target:
            warnings.append(ValidationIssue(code="SELF_LOOP", message="Node connects to itself", edge_id=edge.id))

        outgoing_count[edge.source] = outgoing_count.get(edge.source, 0) + 1

    # Only the first default edge is ever followed
    for node in flow.nodes:
        if node.id not in conditional_ids and outgoing_count.get(node.id, 0) > 1:
            warnings.append(ValidationIssue(
                code="MULTIPLE_DEFAULT_EDGES",
                message="Node has more than one outgoing edge; only the first is followed",
                node_id=node.id
            ))
            # Count each node once even when ids repeat
            outgoing_count[node.id] = 0


def build_adjacency(flow: Flow) -> Dict[str, List[str]]:
    """Edges plus the implicit transitions carried by condition and jump nodes"""
    adjacency: Dict[str, List[str]] = {node.id: [] for node in flow.nodes}

    for edge in flow.edges:
        if edge.source in adjacency:
            adjacency[edge.source].append(edge.target)

    for node in flow.nodes:
        data = _as_dict(node.data)
        if node.type == NodeType.CONDITION.value:
            for condition in _as_list(data.get("conditions")):
                target = _as_dict(condition).get("targetNodeId")
                if target and isinstance(target, str):
                    adjacency[node.id].append(target)
            if data.get("defaultTarget") and isinstance(data["defaultTarget"], str):
                adjacency[node.id].append(data["defaultTarget"])
        elif node.type == NodeType.JUMP.value:
            target = data.get("targetNodeId")
            if target and isinstance(target, str):
                adjacency[node.id].append(target)

    return adjacency


def validate_flow_structure(flow: Flow, warnings: List[ValidationIssue]) -> None:
    adjacency = build_adjacency(flow)

    start_node = flow.find_start_node()
    if start_node is None:
        return  # Already reported by validate_nodes

    reachable = find_reachable(adjacency, start_node.id)
    for node in flow.nodes:
        if node.type != NodeType.START.value and node.id not in reachable:
            warnings.append(ValidationIssue(
                code="UNREACHABLE_NODE", message="Node is not reachable from start node", node_id=node.id
            ))

    for node in flow.nodes:
        if node.type != NodeType.END.value and not adjacency.get(node.id):
            warnings.append(ValidationIssue(
                code="NO_OUTGOING_EDGES", message="Non-end node has no outgoing connections", node_id=node.id
            ))

    if has_cycle(adjacency):
        warnings.append(ValidationIssue(
            code="POTENTIAL_INFINITE_LOOP", message="Flow contains cycles which may cause infinite loops"
        ))


def find_reachable(adjacency: Dict[str, List[str]], start_id: str) -> Set[str]:
    """Iterative DFS from the start node"""
    reachable: Set[str] = set()
    stack = [start_id]

    while stack:
        node_id = stack.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        stack.extend(adjacency.get(node_id, []))

    return reachable


def has_cycle(adjacency: Dict[str, List[str]]) -> bool:
    """Visited/recursion-stack DFS, iterative so deep flows cannot overflow the stack"""
    visited: Set[str] = set()
    on_stack: Set[str] = set()

    for root in adjacency:
        if root in visited:
            continue

        visited.add(root)
        on_stack.add(root)
        stack = [(root, iter(adjacency[root]))]

        while stack:
            node_id, neighbors = stack[-1]
            advanced = False
            for neighbor in neighbors:
                if neighbor in on_stack:
                    return True
                if neighbor not in visited and neighbor in adjacency:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    stack.append((neighbor, iter(adjacency[neighbor])))
                    advanced = True
                    break
            if not advanced:
                on_stack.discard(node_id)
                stack.pop()

    return False
