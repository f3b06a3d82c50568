"""Structured exception hierarchy for the chatbot flow engine."""

from typing import Optional, Dict, Any
from pydantic import BaseModel


class ApiCallFailure(BaseModel):
    """Structured failure returned by the api node HTTP collaborator"""
    error_type: str
    error_message: str
    http_status_code: Optional[int] = None
    is_fatal: bool = False
    context: Dict[str, Any] = {}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ChatbotError(Exception):
    """Base exception for flow and session errors"""

    def __init__(self, message: str, **context):
        self.message = message
        self.context = context
        super().__init__(message)


class FlowNotFoundError(ChatbotError):
    pass


class FlowAccessDeniedError(ChatbotError):
    pass


class FlowVersionNotFoundError(ChatbotError):
    pass


class InvalidFlowStateError(ChatbotError):
    pass


class InvalidImportError(ChatbotError):
    pass


class FlowValidationError(ChatbotError):
    """Raised when a flow fails structural validation"""

    def __init__(self, message: str, result, **context):
        self.result = result
        super().__init__(message, **context)


class FlowNotActiveError(ChatbotError):
    pass


class NoStartNodeError(ChatbotError):
    pass


class SessionNotFoundError(ChatbotError):
    pass


class NotWaitingForInputError(ChatbotError):
    pass


class InvalidInputNodeError(ChatbotError):
    pass


class NodeExecutionError(ChatbotError):
    """Node-level fault that ended the session with status error"""

    def __init__(self, message: str, execution_context=None, **context):
        self.execution_context = execution_context
        super().__init__(message, **context)


class StepBudgetExceededError(NodeExecutionError):
    pass


class ApiCallError(ChatbotError):
    """Recoverable api node failure"""

    def __init__(self, failure: ApiCallFailure):
        self.failure = failure
        super().__init__(failure.error_message, **failure.context)


class FatalApiCallError(ApiCallError):
    pass
