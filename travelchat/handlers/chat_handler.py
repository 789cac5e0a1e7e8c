"""Travel chat endpoint."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from travelchat.dependencies import get_chat_gateway, get_security_logger
from travelchat.models import ChatRequest, ChatResponse
from travelchat.services.audit_log import SecurityLogger
from travelchat.services.chat_gateway import GENERIC_ERROR, ChatGateway, ChatGatewayError

router = APIRouter()
logger = logging.getLogger(__name__)

ENDPOINT = "sri_chatbot"


def _failure(message: str, status_code: int, *, needs_retry: bool | None = None) -> JSONResponse:
    body = ChatResponse(success=False, error=message, needs_retry=needs_retry)
    return JSONResponse(body.to_response(), status_code=status_code)


@router.post("/api/sri-chatbot")
async def sri_chatbot(
    request: Request,
    gateway: ChatGateway | None = Depends(get_chat_gateway),
    audit: SecurityLogger = Depends(get_security_logger),
):
    try:
        try:
            payload = await request.json()
        except ValueError as exc:
            audit.log_api_error(request, ENDPOINT, exc, kind="invalid_json")
            return _failure(GENERIC_ERROR, 500)

        question = payload.get("question") if isinstance(payload, dict) else None
        if not isinstance(question, str) or not question:
            return _failure("Question is required", 400)

        try:
            chat_request = ChatRequest.model_validate(payload)
        except ValidationError as exc:
            logger.info("Malformed chat request: %s", exc)
            return _failure("Invalid request body", 400)

        if gateway is None:
            audit.log_api_error(request, ENDPOINT, "chat is not configured")
            return _failure(GENERIC_ERROR, 500)

        audit.log_api_request(
            request,
            ENDPOINT,
            history_turns=len(chat_request.chat_history),
            attachments=len(chat_request.attachments),
        )
        try:
            answer = await gateway.ask(chat_request)
        except ChatGatewayError as exc:
            audit.log_api_error(request, ENDPOINT, exc, kind=exc.kind.value)
            return _failure(exc.message, 500, needs_retry=exc.needs_retry)

        audit.log_api_success(request, ENDPOINT, response_chars=len(answer))
        body = ChatResponse(success=True, response=answer, question=chat_request.question)
        return JSONResponse(body.to_response())
    except Exception as exc:  # pragma: no cover - last-resort boundary
        logger.exception("Chat request failed unexpectedly: %s", exc)
        return _failure(GENERIC_ERROR, 500)
