"""Flow request models."""

from typing import Any, Dict, List, Optional
from pydantic import Field
from shared.types import CamelModel, Edge, FlowVariable, Node, Viewport


class CreateFlowRequest(CamelModel):
    """Request body for creating a new flow"""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    viewport: Viewport = Field(default_factory=Viewport)
    variables: List[FlowVariable] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_template: bool = False


class UpdateFlowRequest(CamelModel):
    """Partial update; only the fields present in the body are applied"""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    nodes: Optional[List[Node]] = None
    edges: Optional[List[Edge]] = None
    viewport: Optional[Viewport] = None
    variables: Optional[List[FlowVariable]] = None
    tags: Optional[List[str]] = None
    is_template: Optional[bool] = None


class DuplicateFlowRequest(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class CreateVersionRequest(CamelModel):
    change_description: Optional[str] = None


class ImportFlowRequest(CamelModel):
    flow_data: Dict[str, Any]
    name: Optional[str] = None
