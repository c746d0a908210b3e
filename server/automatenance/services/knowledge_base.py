"""Knowledge snippets used as prompt context for AI refinement."""

import logging
from typing import List

from automatenance.config import settings
from automatenance.models.knowledge_doc import KnowledgeDoc
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def truncate(text: str, limit: int) -> str:
    return text[:limit] + "…" if len(text) > limit else text


def format_snippet(doc: KnowledgeDoc, limit: int) -> str:
    url = f" ({doc.url})" if doc.url else ""
    return f"Source:{doc.source}{url}\n{truncate(doc.text or '', limit)}"


async def fetch_snippets(
    db: AsyncSession,
    make: str,
    model: str,
    year: int = None,
    limit: int = None,
    chars: int = None,
) -> List[str]:
    """
    Load up to ``limit`` snippets matching the vehicle (or generic ones).

    Lookup failures yield no context rather than failing the refresh.
    """
    limit = limit or settings.RAG_SNIPPET_LIMIT
    chars = chars or settings.RAG_SNIPPET_CHARS

    stmt = (
        select(KnowledgeDoc)
        .where(
            or_(KnowledgeDoc.make == make, KnowledgeDoc.make.is_(None)),
            or_(KnowledgeDoc.model == model, KnowledgeDoc.model.is_(None)),
            or_(KnowledgeDoc.year == year, KnowledgeDoc.year.is_(None)),
        )
        .order_by(KnowledgeDoc.id)
        .limit(limit)
    )

    try:
        result = await db.execute(stmt)
        docs = result.scalars().all()
    except SQLAlchemyError as e:
        logger.warning(f"Knowledge snippet lookup failed for {year} {make} {model}: {e}")
        # Postgres aborts the transaction on a failed statement
        await db.rollback()
        return []

    return [format_snippet(doc, chars) for doc in docs]
