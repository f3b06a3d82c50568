"""Shared types for flows, sessions and validation results."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from shared.utils import generate_id, utcnow


class NodeType(str, Enum):
    START = "start"
    END = "end"
    MESSAGE = "message"
    INPUT = "input"
    CONDITION = "condition"
    API = "api"
    DELAY = "delay"
    JUMP = "jump"


class InputType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    EMAIL = "email"
    CHOICE = "choice"


class FlowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    ERROR = "error"


class MessageRole(str, Enum):
    USER = "user"
    BOT = "bot"
    SYSTEM = "system"


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ChangeType(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, **kwargs) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


# Graph model

class Position(CamelModel):
    x: float = 0
    y: float = 0


class Node(CamelModel):
    id: str
    type: str
    position: Position = Field(default_factory=Position)
    # Raw payload; handlers parse it into the typed variant for their kind
    data: Dict[str, Any] = Field(default_factory=dict)


class Edge(CamelModel):
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    label: Optional[str] = None


class Viewport(CamelModel):
    x: float = 0
    y: float = 0
    zoom: float = 1


# Node data variants

class MessageNodeData(CamelModel):
    message: Optional[str] = None
    rich_content: Optional[Dict[str, Any]] = None


class InputValidationRules(CamelModel):
    required: bool = False
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None


class InputNodeData(CamelModel):
    message: Optional[str] = None
    input_type: Optional[str] = None
    variable_name: Optional[str] = None
    placeholder: Optional[str] = None
    validation: Optional[InputValidationRules] = None
    choices: Optional[List[str]] = None


class Condition(CamelModel):
    id: Optional[str] = None
    variable: Optional[str] = None
    operator: Optional[str] = None
    value: Any = None
    target_node_id: Optional[str] = None
    label: Optional[str] = None


class ConditionNodeData(CamelModel):
    conditions: List[Condition] = Field(default_factory=list)
    default_target: Optional[str] = None


class ApiConfig(CamelModel):
    url: Optional[str] = None
    method: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    body: Any = None
    response_variable: Optional[str] = None
    timeout: Optional[int] = None


class ApiNodeData(CamelModel):
    api_config: ApiConfig = Field(default_factory=ApiConfig)


class DelayNodeData(CamelModel):
    delay: Optional[float] = None
    display_message: Optional[str] = None


class JumpNodeData(CamelModel):
    target_node_id: Optional[str] = None


class EndNodeData(CamelModel):
    message: Optional[str] = None


# Flows

class FlowVariable(CamelModel):
    name: str
    type: VariableType
    default_value: Any = None
    description: Optional[str] = None


class Flow(CamelModel):
    id: str = Field(default_factory=generate_id)
    user_id: Optional[str] = None
    name: str = "Untitled Flow"
    description: Optional[str] = None
    status: FlowStatus = FlowStatus.DRAFT
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    viewport: Viewport = Field(default_factory=Viewport)
    variables: List[FlowVariable] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    version: int = 1
    is_template: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def get_node(self, node_id: Optional[str]) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def find_start_node(self) -> Optional[Node]:
        for node in self.nodes:
            if node.type == NodeType.START.value:
                return node
        return None

    def next_node_id(self, node_id: str) -> Optional[str]:
        """Default edge lookup: first edge leaving node_id in insertion order"""
        for edge in self.edges:
            if edge.source == node_id:
                return edge.target
        return None

    def declared_variable(self, name: str) -> Optional[FlowVariable]:
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None


class FlowSnapshot(CamelModel):
    name: str
    description: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    viewport: Viewport = Field(default_factory=Viewport)
    variables: List[FlowVariable] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class FlowVersion(CamelModel):
    model_config = ConfigDict(frozen=True)

    flow_id: str
    version_number: int
    snapshot: FlowSnapshot
    change_description: Optional[str] = None
    change_type: ChangeType = ChangeType.MANUAL
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


# Sessions

class ChatMessage(CamelModel):
    id: str = Field(default_factory=generate_id)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    node_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ExecutionContext(CamelModel):
    session_id: str
    flow_id: str
    user_id: Optional[str] = None
    current_node_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    messages: List[ChatMessage] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    waiting_for_input: bool = False
    input_node_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    duration: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.ACTIVE


# Validation

class ValidationIssue(CamelModel):
    code: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None


class ValidationResult(CamelModel):
    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
