"""Data models for catalog records and change events."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from urllib.parse import quote

from .errors import IncompleteBook, InvalidField

GENRES: tuple[str, ...] = (
    "Classic Literature",
    "Fiction",
    "Non-Fiction",
    "Science Fiction",
    "Fantasy",
    "Mystery",
    "Romance",
    "Thriller",
    "Biography",
    "History",
    "Self-Help",
    "Poetry",
    "Drama",
    "Horror",
    "Adventure",
)

MIN_PUBLISHED_YEAR = 1


def placeholder_cover(title: str) -> str:
    """Renderable stand-in cover derived from the first characters of the title."""
    return f"/placeholder.svg?height=120&width=80&text={quote(title[:8])}"


def new_book_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class BookRecord:
    id: str
    title: str
    author: str
    genre: str
    published_year: int
    cover_image: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> BookRecord:
        return cls(
            id=str(data["id"]),
            title=data["title"],
            author=data["author"],
            genre=data["genre"],
            published_year=int(data["published_year"]),
            cover_image=data.get("cover_image") or placeholder_cover(data["title"]),
        )


def validate_book_fields(
    title: object, author: object, genre: object, published_year: object
) -> dict:
    """Check the user-editable fields of a book and return them normalized.

    Raises IncompleteBook when any field is blank and InvalidField when the
    genre is outside GENRES or the year is not a plausible integer.
    """
    values = [title, author, genre, published_year]
    if any(v is None or (isinstance(v, str) and not v.strip()) for v in values):
        raise IncompleteBook()

    genre = str(genre).strip()
    if genre not in GENRES:
        raise InvalidField(f"Unknown genre: {genre}")

    try:
        year = int(str(published_year).strip())
    except ValueError:
        raise InvalidField(f"Published year must be a number: {published_year}") from None
    max_year = datetime.now().year + 1
    if not MIN_PUBLISHED_YEAR <= year <= max_year:
        raise InvalidField(
            f"Published year must be between {MIN_PUBLISHED_YEAR} and {max_year}"
        )

    return {
        "title": str(title).strip(),
        "author": str(author).strip(),
        "genre": genre,
        "published_year": year,
    }


class EventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """One change-feed notification about the books collection."""

    event_type: EventType
    new: BookRecord | None = None
    old: BookRecord | None = None

    @property
    def title(self) -> str:
        """Title to show the user: the new one, or the removed one on delete."""
        record = self.old if self.event_type is EventType.DELETE else self.new
        record = record or self.new or self.old
        return record.title if record else ""

    def to_dict(self) -> dict:
        return {
            "eventType": self.event_type.value,
            "new": self.new.to_dict() if self.new else None,
            "old": self.old.to_dict() if self.old else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ChangeEvent:
        new = data.get("new")
        old = data.get("old")
        return cls(
            event_type=EventType(data["eventType"]),
            new=BookRecord.from_dict(new) if new else None,
            old=BookRecord.from_dict(old) if old else None,
        )


def _sample(book_id: str, title: str, author: str, genre: str, year: int, label: str) -> BookRecord:
    return BookRecord(
        id=book_id,
        title=title,
        author=author,
        genre=genre,
        published_year=year,
        cover_image=f"/placeholder.svg?height=120&width=80&text={label}",
    )


SAMPLE_BOOKS: tuple[BookRecord, ...] = (
    _sample("1", "The Great Gatsby", "F. Scott Fitzgerald", "Classic Literature", 1925, "Gatsby"),
    _sample("2", "To Kill a Mockingbird", "Harper Lee", "Fiction", 1960, "Mockingbird"),
    _sample("3", "1984", "George Orwell", "Science Fiction", 1949, "1984"),
    _sample("4", "Pride and Prejudice", "Jane Austen", "Romance", 1813, "Pride"),
    _sample("5", "The Catcher in the Rye", "J.D. Salinger", "Fiction", 1951, "Catcher"),
    _sample("6", "Dune", "Frank Herbert", "Science Fiction", 1965, "Dune"),
    _sample("7", "The Lord of the Rings", "J.R.R. Tolkien", "Fantasy", 1954, "LOTR"),
    _sample(
        "8",
        "Harry Potter and the Philosopher's Stone",
        "J.K. Rowling",
        "Fantasy",
        1997,
        "Potter",
    ),
)
