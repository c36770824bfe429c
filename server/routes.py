# server/routes.py
"""Chat proxy and preprocessing endpoints."""

from __future__ import annotations

import json
from typing import Any, TypeVar

import structlog
from agents.content_cleaning_agent import ContentCleaningAgent
from config import settings
from core.errors import (
    ConfigurationError,
    FineFormatError,
    InvalidRequest,
    PayloadTooLarge,
    RateLimited,
)
from core.llm_interface import LLMCallResult, LLMService
from core.rate_limit import RateLimitStore
from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, ValidationError

from models import ChatRequest, ChatResponse, PreprocessRequest, PreprocessResponse

from server.responses import CORS_HEADERS

logger = structlog.get_logger(__name__)

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)

ENDPOINT_PATHS = ("/chat/gemini", "/chat/openrouter", "/preprocess")


def get_service(request: Request) -> LLMService:
    return request.app.state.llm_service


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(request: Request) -> None:
    store: RateLimitStore = request.app.state.rate_limit_store
    decision = store.hit(
        f"client:{client_address(request)}",
        settings.RATE_LIMIT_REQUESTS,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    if not decision.allowed:
        raise RateLimited(decision.retry_after)


async def parse_body(request: Request, model: type[ModelT]) -> ModelT:
    raw = await request.body()
    try:
        data = json.loads(raw or b"")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequest("Invalid JSON in request body", details=str(exc)) from exc
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        raise InvalidRequest(
            str(first.get("msg", "Invalid request")),
            details="; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ),
        ) from exc


def chat_response(result: LLMCallResult) -> dict[str, Any]:
    return ChatResponse(
        content=result.text,
        candidates=result.candidates,
        usage=result.usage.get_if_used(),
        finish_reason=result.finish_reason,
        truncated=result.truncated,
        key_used=result.key_used,
    ).model_dump(by_alias=True, exclude_none=True)


async def preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


for _path in ENDPOINT_PATHS:
    router.add_api_route(_path, preflight, methods=["OPTIONS"], include_in_schema=False)


@router.post("/chat/gemini", dependencies=[Depends(enforce_rate_limit)])
async def gemini_chat(
    request: Request, service: LLMService = Depends(get_service)
) -> dict[str, Any]:
    chat = await parse_body(request, ChatRequest)
    result = await service.async_call_llm(
        "gemini",
        chat.messages,
        temperature=chat.temperature,
        max_tokens=chat.max_tokens,
        model_name=chat.model,
        tools=chat.tools,
        config=chat.config,
        label="gemini chat",
    )
    return chat_response(result)


@router.post("/chat/openrouter", dependencies=[Depends(enforce_rate_limit)])
async def openrouter_chat(
    request: Request, service: LLMService = Depends(get_service)
) -> dict[str, Any]:
    chat = await parse_body(request, ChatRequest)
    result = await service.async_call_llm(
        "openrouter",
        chat.messages,
        temperature=chat.temperature,
        max_tokens=chat.max_tokens,
        model_name=chat.model,
        config=chat.config,
        label="openrouter chat",
    )
    return chat_response(result)


@router.post("/preprocess", dependencies=[Depends(enforce_rate_limit)])
async def preprocess(
    request: Request, service: LLMService = Depends(get_service)
) -> dict[str, Any]:
    body = await parse_body(request, PreprocessRequest)
    agent = ContentCleaningAgent(service=service)
    cleaned_texts: list[str] = []
    key_used = 0
    last_error: FineFormatError | None = None

    for source in body.sources:
        name = source.metadata.name
        try:
            if source.metadata.is_binary:
                size = int(len(source.content) * 0.75)
                if size > settings.PREPROCESS_MAX_BINARY_BYTES:
                    raise PayloadTooLarge(size, settings.PREPROCESS_MAX_BINARY_BYTES)
                result = await agent.clean_binary(
                    source.content,
                    source.metadata.mime_type or "application/pdf",
                    name,
                )
            else:
                result = await agent.clean_text(source.content, name)
        except (ConfigurationError, PayloadTooLarge):
            raise
        except FineFormatError as exc:
            logger.warning("Skipping source %s: %s", name, exc)
            last_error = exc
            continue
        text = result.text.strip()
        if len(text) > settings.PREPROCESS_MIN_TEXT_CHARS:
            cleaned_texts.append(text)
            key_used = result.key_used
        else:
            logger.info("Cleaned text for %s too short; dropped.", name)

    if not cleaned_texts:
        if last_error is not None:
            raise last_error
        raise FineFormatError(
            "No valid cleaned text produced from sources",
            details=f"{len(body.sources)} sources processed",
        )
    logger.info(
        "Preprocessed %d sources into %d cleaned texts.",
        len(body.sources),
        len(cleaned_texts),
    )
    return PreprocessResponse(
        cleaned_texts=cleaned_texts,
        sources_processed=len(body.sources),
        key_used=key_used,
    ).model_dump(by_alias=True)
