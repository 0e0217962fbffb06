"""Tests for the catalog service request flows."""
from decimal import Decimal

import pytest

from bookcatalog.config import Config
from bookcatalog.errors import AlreadyShelved, NotFoundError, UnknownIdentity
from bookcatalog.models import Book, BookState, EntityKind, User
from bookcatalog.services import CatalogService
from bookcatalog.stores import (
    InMemoryBookStore, InMemoryCommentStore, InMemoryEntityStore,
    InMemoryIdentityStore, InMemoryVoteStore
)


def make_service():
    config = Config()
    config.DEDUPE_LINKS = False
    config.RATING_PRECISION = 2

    identities = InMemoryIdentityStore([
        User("u1", "alice", profile_picture_url="http://pics/alice.png"),
        User("u2", "bob"),
        User("u3", "root", is_admin=True),
    ])
    return CatalogService(
        books=InMemoryBookStore(),
        entities=InMemoryEntityStore(),
        identities=identities,
        votes=InMemoryVoteStore(),
        comments=InMemoryCommentStore(),
        config=config
    )


def test_add_book_links_taxonomy():
    """Test adding a book with genre and tag text."""
    service = make_service()

    submission = service.add_book(
        Book("b1", "The Hobbit", "J.R.R. Tolkien"),
        genres_text="Fantasy, Adventure",
        tags_text="dragons; classic"
    )
    details = service.book_details("b1")

    assert len(submission.links) == 4
    assert details.genres == ["Fantasy", "Adventure"]
    assert details.tags == ["dragons", "classic"]


def test_rate_book_by_username():
    """Test rating flow from usernames to the aggregated rating."""
    service = make_service()
    service.add_book(Book("b1", "Dune", "Frank Herbert"))

    service.rate_book("b1", "alice", 3)
    service.rate_book("b1", "bob", 5)
    book = service.rate_book("b1", "alice", 5)

    assert book.rating == Decimal("4.5")
    assert book.rates_count == 2

    details = service.book_details("b1", "alice")
    assert details.is_rated
    assert details.user_rating == 5


def test_book_details_unrated_viewer():
    """Test that a viewer without a vote sees no rating of their own."""
    service = make_service()
    service.add_book(Book("b1", "Dune", "Frank Herbert"))

    details = service.book_details("b1", "bob")

    assert details.is_rated is False
    assert details.user_rating == 0


def test_rate_book_unknown_user():
    """Test that an unknown voter is rejected before any update."""
    service = make_service()
    service.add_book(Book("b1", "Dune", "Frank Herbert"))

    with pytest.raises(UnknownIdentity):
        service.rate_book("b1", "mallory", 4)

    assert service.books.get_by_id("b1").rates_count == 0


def test_rate_missing_book():
    """Test that rating a missing book raises a store error."""
    service = make_service()

    with pytest.raises(NotFoundError):
        service.rate_book("nope", "alice", 4)


def test_list_comments_for_viewer():
    """Test comments with pictures and edit rights per viewer."""
    service = make_service()
    service.add_book(Book("b1", "Dune", "Frank Herbert"))
    service.add_comment("b1", "alice", "Spice!")
    service.add_comment("b1", "bob", "Too long")

    as_bob = service.list_comments("b1", "bob")
    as_root = service.list_comments("b1", "root")
    anonymous = service.list_comments("b1")

    assert [c.author for c in as_bob] == ["alice", "bob"]
    assert [c.can_edit for c in as_bob] == [False, True]
    assert [c.can_edit for c in as_root] == [True, True]
    assert [c.can_edit for c in anonymous] == [False, False]
    assert as_bob[0].author_pic_url == "http://pics/alice.png"
    assert as_bob[0].user_id == "u1"


def test_shelves_by_username():
    """Test shelving, listing and removing through usernames."""
    service = make_service()
    service.add_book(Book("b1", "Dune", "Frank Herbert"))
    service.add_book(Book("b2", "Emma", "Jane Austen"))

    service.shelve_book("b1", "alice", BookState.CURRENTLY_READING)
    service.shelve_book("b2", "alice", BookState.CURRENTLY_READING)
    service.remove_from_shelf("b2", "alice")

    reading = service.books_on_shelf("alice", BookState.CURRENTLY_READING)
    assert [b.title for b in reading] == ["Dune"]

    with pytest.raises(AlreadyShelved):
        service.shelve_book("b1", "alice", BookState.CURRENTLY_READING)
    with pytest.raises(UnknownIdentity):
        service.shelve_book("b1", "mallory", BookState.READ)


def test_books_for_entity():
    """Test listing the books in a genre and with a tag."""
    service = make_service()
    service.add_book(Book("b1", "The Hobbit", "J.R.R. Tolkien"), genres_text="Fantasy", tags_text="dragons")
    service.add_book(Book("b2", "Dune", "Frank Herbert"), genres_text="Sci-Fi", tags_text="desert")
    service.add_book(Book("b3", "Eragon", "Christopher Paolini"), genres_text="Fantasy", tags_text="dragons dragons")

    fantasy = service.books_for_entity(EntityKind.GENRE, "Fantasy")
    dragons = service.books_for_entity(EntityKind.TAG, "dragons")

    assert [b.id for b in fantasy] == ["b1", "b3"]
    assert [b.id for b in dragons] == ["b1", "b3"]
    assert service.books_for_entity(EntityKind.GENRE, "fantasy") == []
    assert service.books_for_entity(EntityKind.TAG, "Fantasy") == []
