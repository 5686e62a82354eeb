"""Catalog stores: book records plus a change feed on the ``books`` topic."""

from __future__ import annotations

import os
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from .errors import BookNotFound, DuplicateBook, InvalidField
from .feed import ChangeFeed, ChangeHandler, ConnectHandler, Subscription
from .models import BookRecord, ChangeEvent, EventType

log = structlog.get_logger()

BOOKS_TOPIC = "books"
UPDATABLE_FIELDS = frozenset({"title", "author", "genre", "published_year", "cover_image"})


@runtime_checkable
class CatalogStore(Protocol):
    async def query_all(self) -> list[BookRecord]: ...

    async def insert(self, record: BookRecord) -> BookRecord: ...

    async def update(self, book_id: str, **fields: object) -> BookRecord: ...

    async def delete(self, book_id: str) -> BookRecord: ...

    def subscribe(
        self, topic: str, handler: ChangeHandler, on_connect: ConnectHandler | None = None
    ) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> None: ...


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidField(f"Cannot update fields: {', '.join(sorted(unknown))}")


class BaseCatalogStore:
    """Change-feed plumbing shared by the local store backends."""

    def __init__(self) -> None:
        self.feed = ChangeFeed()

    def subscribe(
        self, topic: str, handler: ChangeHandler, on_connect: ConnectHandler | None = None
    ) -> Subscription:
        # In-process feeds never disconnect; on_connect is unused
        return self.feed.subscribe(topic, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.feed.unsubscribe(subscription)

    async def _emit(
        self,
        event_type: EventType,
        new: BookRecord | None = None,
        old: BookRecord | None = None,
    ) -> None:
        await self.feed.publish(BOOKS_TOPIC, ChangeEvent(event_type, new=new, old=old))


class InMemoryCatalogStore(BaseCatalogStore):
    """Insertion-ordered records held in a dict; nothing is persisted."""

    def __init__(self, seed: Iterable[BookRecord] = ()) -> None:
        super().__init__()
        self._books: dict[str, BookRecord] = {b.id: b for b in seed}

    async def query_all(self) -> list[BookRecord]:
        return list(self._books.values())

    async def insert(self, record: BookRecord) -> BookRecord:
        if record.id in self._books:
            raise DuplicateBook(record.id)
        self._books[record.id] = record
        log.info("book_inserted", id=record.id, title=record.title)
        await self._emit(EventType.INSERT, new=record)
        return record

    async def update(self, book_id: str, **fields: object) -> BookRecord:
        _check_fields(fields)
        old = self._books.get(book_id)
        if old is None:
            raise BookNotFound(book_id)
        new = BookRecord(**{**old.to_dict(), **fields})
        self._books[book_id] = new
        log.info("book_updated", id=book_id, fields=sorted(fields))
        await self._emit(EventType.UPDATE, new=new, old=old)
        return new

    async def delete(self, book_id: str) -> BookRecord:
        old = self._books.pop(book_id, None)
        if old is None:
            raise BookNotFound(book_id)
        log.info("book_deleted", id=book_id, title=old.title)
        await self._emit(EventType.DELETE, old=old)
        return old


class SqliteCatalogStore(BaseCatalogStore):
    """Persist book records in a local SQLite database."""

    def __init__(self, db_path: Path | None = None) -> None:
        super().__init__()
        if db_path is None:
            db_path = Path(os.environ.get("CATALOG_DB", "catalog.db"))
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                genre TEXT NOT NULL,
                published_year INTEGER NOT NULL,
                cover_image TEXT NOT NULL,
                created_at REAL
            )"""
        )
        self._conn.commit()

    def _row_to_record(self, row: tuple) -> BookRecord:
        book_id, title, author, genre, published_year, cover_image = row
        return BookRecord(
            id=book_id,
            title=title,
            author=author,
            genre=genre,
            published_year=published_year,
            cover_image=cover_image,
        )

    def _get(self, book_id: str) -> BookRecord | None:
        row = self._conn.execute(
            "SELECT id, title, author, genre, published_year, cover_image "
            "FROM books WHERE id = ?",
            (book_id,),
        ).fetchone()
        return self._row_to_record(row) if row else None

    async def query_all(self) -> list[BookRecord]:
        rows = self._conn.execute(
            "SELECT id, title, author, genre, published_year, cover_image "
            "FROM books ORDER BY created_at, rowid"
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    async def insert(self, record: BookRecord) -> BookRecord:
        try:
            self._conn.execute(
                "INSERT INTO books (id, title, author, genre, published_year, cover_image, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.title,
                    record.author,
                    record.genre,
                    record.published_year,
                    record.cover_image,
                    time.time(),
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError:
            raise DuplicateBook(record.id) from None
        log.info("book_inserted", id=record.id, title=record.title, db=str(self.db_path))
        await self._emit(EventType.INSERT, new=record)
        return record

    async def update(self, book_id: str, **fields: object) -> BookRecord:
        _check_fields(fields)
        old = self._get(book_id)
        if old is None:
            raise BookNotFound(book_id)
        new = BookRecord(**{**old.to_dict(), **fields})
        self._conn.execute(
            "UPDATE books SET title = ?, author = ?, genre = ?, published_year = ?, "
            "cover_image = ? WHERE id = ?",
            (new.title, new.author, new.genre, new.published_year, new.cover_image, book_id),
        )
        self._conn.commit()
        log.info("book_updated", id=book_id, fields=sorted(fields), db=str(self.db_path))
        await self._emit(EventType.UPDATE, new=new, old=old)
        return new

    async def delete(self, book_id: str) -> BookRecord:
        old = self._get(book_id)
        if old is None:
            raise BookNotFound(book_id)
        self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        self._conn.commit()
        log.info("book_deleted", id=book_id, title=old.title, db=str(self.db_path))
        await self._emit(EventType.DELETE, old=old)
        return old

    def close(self) -> None:
        self._conn.close()
