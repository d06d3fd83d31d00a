"""
Document store and retrieval for question answering over restaurant notes.
"""

import json
import logging
import math
import re

from sqlmodel import Session, select

from . import models
from .llm import TextGenerator

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
MAX_TOP_K = 10
NO_DOCUMENTS_ANSWER = "I don't have any documents that answer that."

_WORD_RE = re.compile(r"[a-z0-9]+")


def parse_embedding(raw) -> list[float] | None:
    """Accept a list of numbers or its JSON text; anything else is no embedding."""
    if raw is None:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(raw, list) or not raw:
        return None
    try:
        return [float(x) for x in raw]
    except (TypeError, ValueError):
        return None


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def tokenize(text: str) -> set[str]:
    return set(_WORD_RE.findall((text or "").lower()))


def jaccard_similarity(a: str, b: str) -> float:
    left, right = tokenize(a), tokenize(b)
    union = left | right
    return len(left & right) / len(union) if union else 0.0


def clamp_top_k(value) -> int:
    if value is None or isinstance(value, bool):
        return DEFAULT_TOP_K
    try:
        top_k = int(value)
    except (TypeError, ValueError):
        return DEFAULT_TOP_K
    return max(1, min(MAX_TOP_K, top_k))


def rank_documents(
    documents: list[models.RagDocument],
    query: str,
    query_embedding: list[float] | None = None,
    top_k: int = DEFAULT_TOP_K,
) -> list[tuple[models.RagDocument, float]]:
    """Score documents against a query, best first, keeping only positive scores."""
    scored = []
    for doc in documents:
        doc_embedding = parse_embedding(doc.embedding)
        if query_embedding and doc_embedding and len(doc_embedding) == len(query_embedding):
            score = cosine_similarity(query_embedding, doc_embedding)
        else:
            score = jaccard_similarity(query, doc.content)
        if score > 0:
            scored.append((doc, score))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:top_k]


def answer_prompt(query: str, documents: list[models.RagDocument]) -> str:
    context = "\n\n".join(f"[{doc.id}] {doc.content}" for doc in documents)
    return (
        "Answer the question using only the documents below. "
        "If they do not contain the answer, say so.\n\n"
        f"Documents:\n{context}\n\n"
        f"Question: {query}\n\n"
        "Answer:"
    )


def add_document(session: Session, content: str, embedding=None, source: str | None = None) -> models.RagDocument:
    vector = parse_embedding(embedding)
    doc = models.RagDocument(
        content=content,
        embedding=json.dumps(vector) if vector else None,
        source=source,
    )
    session.add(doc)
    session.commit()
    session.refresh(doc)
    return doc


def answer_query(
    session: Session,
    llm_factory,
    query: str,
    embedding=None,
    top_k=None,
) -> models.RagQuery:
    """
    Retrieve the best documents and answer from them.
    `llm_factory` is only called when there is something to answer from.
    """
    documents = list(session.exec(select(models.RagDocument)).all())
    ranked = rank_documents(documents, query, parse_embedding(embedding), clamp_top_k(top_k))
    retrieved = [doc for doc, _ in ranked]

    if retrieved:
        llm: TextGenerator = llm_factory()
        response = llm.generate(answer_prompt(query, retrieved))
    else:
        response = NO_DOCUMENTS_ANSWER

    logger.info(f"RAG query matched {len(retrieved)} of {len(documents)} document(s)")
    record = models.RagQuery(
        query=query,
        retrieved_ids=",".join(str(doc.id) for doc in retrieved),
        response=response,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    return record
