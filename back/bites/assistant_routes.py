"""
Natural-language data questions and document Q&A.
"""

import logging
from collections.abc import Callable
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlmodel import Session

from . import assistant, models, rag
from .db import get_session
from .llm import AssistantError, TextGenerator, get_llm
from .permissions import Permissions
from .security import PermissionChecker

logger = logging.getLogger(__name__)

router = APIRouter()

UNAVAILABLE_MESSAGE = "The assistant is unavailable right now."
NOT_CONFIGURED_MESSAGE = "The assistant is not configured."


def assistant_http_error(error: AssistantError) -> HTTPException:
    if not error.configured:
        return HTTPException(status_code=503, detail=NOT_CONFIGURED_MESSAGE)
    return HTTPException(status_code=502, detail=UNAVAILABLE_MESSAGE)


def llm_factory() -> Callable[[], TextGenerator]:
    """Lazy accessor so the client is only built when an answer needs it."""
    return get_llm


@router.post("/ai")
def ask_assistant(
    body: models.AssistantPrompt,
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ASSISTANT_USE))],
    session: Session = Depends(get_session),
    get_client=Depends(llm_factory),
) -> dict:
    """Answer a question about staff, menu, orders, inventory or suppliers."""
    prompt = (body.prompt or "").strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")

    try:
        llm: TextGenerator = get_client()
        return assistant.answer_question(session, llm, prompt)
    except assistant.UnknownModelError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AssistantError as e:
        logger.warning(f"Assistant failed for {current_user.username}: {e}")
        raise assistant_http_error(e)


@router.post("/rag")
def rag_endpoint(
    current_user: Annotated[models.User, Depends(PermissionChecker(Permissions.ASSISTANT_USE))],
    body: Any = Body(None),
    session: Session = Depends(get_session),
    get_client=Depends(llm_factory),
) -> dict:
    """Store a document (`content`) or answer a question from stored documents (`query`)."""
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid request")

    content = body.get("content")
    if isinstance(content, str) and content.strip():
        doc = rag.add_document(session, content.strip(), body.get("embedding"), body.get("source"))
        return {
            "id": doc.id,
            "content": doc.content,
            "source": doc.source,
            "hasEmbedding": doc.embedding is not None,
            "createdAt": doc.created_at.isoformat(),
        }

    query = body.get("query")
    if isinstance(query, str) and query.strip():
        try:
            record = rag.answer_query(session, get_client, query.strip(), body.get("embedding"), body.get("top_k"))
        except AssistantError as e:
            logger.warning(f"RAG answer failed: {e}")
            raise assistant_http_error(e)
        return {
            "id": record.id,
            "query": record.query,
            "retrievedIds": [int(i) for i in record.retrieved_ids.split(",") if i],
            "response": record.response,
            "createdAt": record.created_at.isoformat(),
        }

    raise HTTPException(status_code=400, detail="Invalid request")
