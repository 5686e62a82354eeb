"""Tests for the visible list and its search filter."""

from bookcatalog.client.view import CatalogView
from bookcatalog.core.models import SAMPLE_BOOKS, BookRecord


def test_filter_matches_title_author_or_genre_ignoring_case():
    view = CatalogView(SAMPLE_BOOKS)

    assert [b.title for b in view.filtered("dune")] == ["Dune"]
    assert [b.title for b in view.filtered("ORWELL")] == ["1984"]
    assert {b.title for b in view.filtered("fantasy")} == {
        "The Lord of the Rings",
        "Harry Potter and the Philosopher's Stone",
    }
    assert view.filtered("no such book") == []


def test_empty_term_shows_everything():
    view = CatalogView(SAMPLE_BOOKS)
    assert view.filtered("") == list(SAMPLE_BOOKS)
    assert view.filtered("   ") == list(SAMPLE_BOOKS)


def test_search_term_is_used_by_default():
    view = CatalogView(SAMPLE_BOOKS)
    view.search_term = "austen"
    assert [b.title for b in view.filtered()] == ["Pride and Prejudice"]


def test_replace_keeps_ids_unique():
    first = SAMPLE_BOOKS[0]
    changed = BookRecord(**{**first.to_dict(), "title": "Gatsby (revised)"})
    view = CatalogView()

    view.replace([first, SAMPLE_BOOKS[1], changed])

    assert len(view) == 2
    assert view.books[0].title == "Gatsby (revised)"


def test_add_local_replaces_same_id():
    view = CatalogView(SAMPLE_BOOKS[:2])
    renamed = BookRecord(**{**SAMPLE_BOOKS[0].to_dict(), "title": "Renamed"})

    view.add_local(renamed)

    assert len(view) == 2
    assert view.books[-1] == renamed
