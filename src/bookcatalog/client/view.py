"""The visible list of books and its search filter."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from ..core.catalog import filter_books
from ..core.models import BookRecord

log = structlog.get_logger()


class CatalogView:
    """Owned cache of the records currently on screen.

    With a catalog store configured the list is only ever replaced wholesale
    from a re-query. ``add_local`` exists for the store-less variant.
    """

    def __init__(self, books: Iterable[BookRecord] = ()) -> None:
        self._books: list[BookRecord] = []
        self.search_term = ""
        self.replace(books)

    @property
    def books(self) -> tuple[BookRecord, ...]:
        return tuple(self._books)

    def __len__(self) -> int:
        return len(self._books)

    def replace(self, books: Iterable[BookRecord]) -> None:
        # Later duplicates of an id win, keeping the first position
        by_id: dict[str, BookRecord] = {}
        for book in books:
            by_id[book.id] = book
        self._books = list(by_id.values())
        log.debug("view_replaced", count=len(self._books))

    def add_local(self, record: BookRecord) -> None:
        self._books = [b for b in self._books if b.id != record.id]
        self._books.append(record)

    def filtered(self, term: str | None = None) -> list[BookRecord]:
        return filter_books(self._books, self.search_term if term is None else term)
