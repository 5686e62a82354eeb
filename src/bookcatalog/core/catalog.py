"""Search over catalog records."""

from __future__ import annotations

from collections.abc import Iterable

from .models import BookRecord


def _norm(s: str | None) -> str:
    return (s or "").strip().lower()


def matches(book: BookRecord, term: str) -> bool:
    """Case-insensitive substring match on title, author or genre."""
    needle = _norm(term)
    if not needle:
        return True
    return any(needle in _norm(field) for field in (book.title, book.author, book.genre))


def filter_books(books: Iterable[BookRecord], term: str | None) -> list[BookRecord]:
    return [b for b in books if matches(b, term or "")]
