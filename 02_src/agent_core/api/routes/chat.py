"""OpenAI-compatible chat API routes."""

import json
from typing import AsyncIterator, Literal

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ...app import IApplication
from ...errors import InvalidStateError
from ...logging_config import get_logger
from ...models import AgentState, ChatMessage, ChatRequest, ContentPart

logger = get_logger(__name__)


class ContentPartModel(BaseModel):
    """Request model for one part of multimodal content."""

    type: Literal["text", "image_url", "file"]
    text: str | None = None
    image_url: dict | None = None
    file: dict | None = None


class ChatMessageModel(BaseModel):
    """Request model for a chat message."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str | list[ContentPartModel]
    name: str | None = None
    tool_call_id: str | None = None


class ChatCompletionRequest(BaseModel):
    """Request model for chat completions."""

    messages: list[ChatMessageModel] = Field(min_length=1)
    model: str | None = None
    stream: bool = False
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, gt=0)
    session_id: str | None = None


def to_chat_request(request: ChatCompletionRequest) -> ChatRequest:
    """Convert the HTTP request model into a core ChatRequest."""
    messages = []
    for m in request.messages:
        content = (
            m.content
            if isinstance(m.content, str)
            else tuple(ContentPart(**part.model_dump()) for part in m.content)
        )
        messages.append(
            ChatMessage(role=m.role, content=content, name=m.name, tool_call_id=m.tool_call_id)
        )
    return ChatRequest(
        messages=messages,
        model=request.model,
        stream=request.stream,
        temperature=request.temperature,
        max_tokens=request.max_tokens,
        session_id=request.session_id,
    )


def create_chat_router(app: IApplication) -> APIRouter:
    """Create chat router."""
    router = APIRouter(prefix="/v1", tags=["chat"])

    @router.post("/chat/completions")
    async def chat_completions(request: ChatCompletionRequest):
        """Answer a chat request, as JSON or as server-sent events."""
        if request.messages[-1].role != "user":
            raise HTTPException(status_code=400, detail="Last message must be from user")

        chat_request = to_chat_request(request)
        agent = app.agent

        if request.stream:
            if agent.state not in (AgentState.READY, AgentState.IDLE):
                raise HTTPException(status_code=409, detail=f"Agent is {agent.state.value}")
            return StreamingResponse(
                _sse(agent.chat_stream(chat_request)), media_type="text/event-stream"
            )

        try:
            response = await agent.chat(chat_request)
            return response.to_dict()
        except InvalidStateError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router


async def _sse(chunks: AsyncIterator) -> AsyncIterator[str]:
    try:
        async for chunk in chunks:
            yield f"data: {json.dumps(chunk.to_dict(), ensure_ascii=False)}\n\n"
    except Exception as e:
        logger.error(f"Chat stream failed: {e}")
        yield f"data: {json.dumps({'error': {'message': str(e)}})}\n\n"
    yield "data: [DONE]\n\n"
