"""API service for chatbot flows and chat sessions."""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from services.api.routes.flows import router as flows_router
from services.api.routes.chat import router as chat_router, ws_router as chat_ws_router
from services.api.middleware import CorrelationIdMiddleware
from shared.exceptions import (
    ChatbotError,
    FlowAccessDeniedError,
    FlowNotActiveError,
    FlowNotFoundError,
    FlowValidationError,
    FlowVersionNotFoundError,
    InvalidFlowStateError,
    NodeExecutionError,
    NotWaitingForInputError,
    SessionNotFoundError,
)
from shared.logging_config import setup_logging

setup_logging("api")

ERROR_STATUS_CODES = {
    FlowNotFoundError: 404,
    FlowVersionNotFoundError: 404,
    SessionNotFoundError: 404,
    FlowAccessDeniedError: 403,
    FlowNotActiveError: 409,
    InvalidFlowStateError: 409,
    NotWaitingForInputError: 409,
    NodeExecutionError: 500,
}

app = FastAPI(title="Chatbot Flow API", version="1.0.0")
app.add_middleware(CorrelationIdMiddleware)

app.include_router(flows_router, tags=["Flows"])
app.include_router(chat_router, tags=["Chat"])
app.include_router(chat_ws_router, tags=["Chat"])


def status_code_for(exc: ChatbotError) -> int:
    """Most specific mapping wins; anything unmapped is caller misuse"""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 400


@app.exception_handler(ChatbotError)
async def chatbot_error_handler(request: Request, exc: ChatbotError):
    status_code = status_code_for(exc)
    content = {"error": type(exc).__name__, "detail": exc.message}

    if isinstance(exc, FlowValidationError):
        content["errors"] = [issue.to_wire() for issue in exc.result.errors]
        content["warnings"] = [issue.to_wire() for issue in exc.result.warnings]

    if isinstance(exc, NodeExecutionError) and exc.execution_context is not None:
        content["session"] = exc.execution_context.to_wire()

    if status_code >= 500:
        logging.error("Request failed", extra={"path": request.url.path, "error": exc.message})
    else:
        logging.info("Request rejected", extra={"path": request.url.path, "status_code": status_code})

    return JSONResponse(status_code=status_code, content=content)


@app.get("/")
async def root():
    return {"service": "api", "status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import os
    import uvicorn

    uvicorn.run("services.api.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
