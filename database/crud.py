"""CRUD operations on the documents table."""

import copy
import operator
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import select, delete, text
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Document
from utils.logger import logger


Filter = tuple[str, str, Any]

FILTER_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda field_value, value: field_value in value,
    "array-contains": lambda field_value, value: isinstance(field_value, list) and value in field_value,
}


def deep_merge(base: Mapping[str, Any], changes: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``changes`` into a copy of ``base``; nested mappings merge recursively."""
    merged = copy.deepcopy(dict(base))
    for key, value in changes.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _with_id(document: Document) -> dict[str, Any]:
    return {**document.data, "id": document.doc_id}


def _get_field(data: Mapping[str, Any], path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def matches_filters(data: Mapping[str, Any], filters: Iterable[Filter]) -> bool:
    for field, op, value in filters:
        compare = FILTER_OPERATORS.get(op)
        if compare is None:
            raise ValueError(f"Unsupported filter operator: {op!r}")
        field_value = _get_field(data, field)
        if field_value is None and op not in ("==", "!="):
            return False
        try:
            if not compare(field_value, value):
                return False
        except TypeError:
            return False
    return True


# ============== DOCUMENT OPERATIONS ==============

async def ping(session: AsyncSession) -> None:
    """Round trip to the database. Raises if it is unreachable."""
    await session.execute(text("SELECT 1"))


async def _get_row(session: AsyncSession, collection: str, doc_id: str) -> Document | None:
    result = await session.execute(
        select(Document).where(
            Document.collection == collection,
            Document.doc_id == doc_id,
        )
    )
    return result.scalar_one_or_none()


async def get_document(session: AsyncSession, collection: str, doc_id: str) -> dict[str, Any] | None:
    document = await _get_row(session, collection, doc_id)
    if document is None:
        return None
    return _with_id(document)


async def set_document(
    session: AsyncSession,
    collection: str,
    doc_id: str,
    data: Mapping[str, Any],
    merge: bool = False,
) -> dict[str, Any]:
    """
    Write a document.

    Without ``merge`` the stored data is replaced. With ``merge`` the new
    fields are deep-merged into the existing document, which is created if
    missing.
    """
    document = await _get_row(session, collection, doc_id)

    if document is None:
        document = Document(collection=collection, doc_id=doc_id, data=dict(data))
        session.add(document)
    elif merge:
        document.data = deep_merge(document.data, data)
    else:
        document.data = dict(data)

    await session.commit()
    await session.refresh(document)

    logger.debug(f"Wrote document {collection}/{doc_id} (merge={merge})")
    return _with_id(document)


async def delete_document(session: AsyncSession, collection: str, doc_id: str) -> bool:
    """Delete a document. Returns False if there was nothing to delete."""
    result = await session.execute(
        delete(Document).where(
            Document.collection == collection,
            Document.doc_id == doc_id,
        )
    )
    await session.commit()

    deleted = result.rowcount > 0
    if deleted:
        logger.debug(f"Deleted document {collection}/{doc_id}")
    return deleted


async def query_collection(
    session: AsyncSession,
    collection: str,
    filters: Iterable[Filter] = (),
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """
    Query documents of a collection.

    Filters are ``(field, op, value)`` triples evaluated on the JSON data;
    dotted field names reach into nested mappings.
    """
    filters = list(filters)
    result = await session.execute(
        select(Document)
        .where(Document.collection == collection)
        .order_by(Document.id)
    )
    documents = [
        _with_id(document)
        for document in result.scalars().all()
        if matches_filters(document.data, filters)
    ]

    if order_by:
        # Documents missing the field sort last
        present = [d for d in documents if _get_field(d, order_by) is not None]
        missing = [d for d in documents if _get_field(d, order_by) is None]
        present.sort(key=lambda d: _get_field(d, order_by), reverse=descending)
        documents = present + missing

    if limit is not None:
        documents = documents[:limit]

    return documents
