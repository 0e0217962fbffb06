"""Tests for rating aggregation."""
from decimal import Decimal

import pytest

from bookcatalog.errors import ConflictError, PreconditionViolation, StoreFailure
from bookcatalog.models import Book, BookState, BookUserVote
from bookcatalog.rating import RatingAggregator
from bookcatalog.stores import InMemoryBookStore, InMemoryVoteStore


def make_aggregator(rating="0", rates_count=0):
    books = InMemoryBookStore()
    books.add(Book("b1", "Dune", "Frank Herbert", rating=Decimal(rating), rates_count=rates_count))
    return RatingAggregator(books, InMemoryVoteStore(), precision=2), books


def test_new_votes_of_same_value():
    """Test that identical new votes keep the mean and grow the count."""
    aggregator, books = make_aggregator()

    once = aggregator.apply_rating(books.get_by_id("b1"), 5, is_new_voter=True)
    assert once.rating == Decimal("5")
    assert once.rates_count == 1

    twice = aggregator.apply_rating(books.get_by_id("b1"), 5, is_new_voter=True)
    assert twice.rating == Decimal("5")
    assert twice.rates_count == 2


def test_revote_replaces_previous_vote():
    """Test changing a 3 to a 5 when votes were 3 and 5."""
    aggregator, books = make_aggregator(rating="4", rates_count=2)

    book = aggregator.apply_rating(books.get_by_id("b1"), 5, is_new_voter=False)

    assert book.rating == Decimal("4.5")
    assert book.rates_count == 2


def test_revote_on_unrated_book_fails():
    """Test that replacing a vote on a book with no votes is rejected."""
    aggregator, books = make_aggregator()

    with pytest.raises(PreconditionViolation):
        aggregator.apply_rating(books.get_by_id("b1"), 4, is_new_voter=False)

    assert books.get_by_id("b1").rates_count == 0


def test_negative_vote_count_fails():
    """Test that a corrupt vote count is rejected."""
    aggregator, books = make_aggregator(rates_count=-1)

    with pytest.raises(PreconditionViolation):
        aggregator.apply_rating(books.get_by_id("b1"), 4, is_new_voter=True)


def test_rating_rounded_on_every_update():
    """Test that each update rounds half up to the configured precision."""
    aggregator, books = make_aggregator()

    for rate in (1, 2, 2):
        book = aggregator.apply_rating(books.get_by_id("b1"), rate, is_new_voter=True)

    assert book.rating == Decimal("1.67")
    assert str(book.rating) == "1.67"
    assert book.rates_count == 3


def test_out_of_range_vote_is_not_clamped():
    """Test that range checks are left to the caller."""
    aggregator, books = make_aggregator()

    book = aggregator.apply_rating(books.get_by_id("b1"), 11, is_new_voter=True)

    assert book.rating == Decimal("11")


def test_stale_book_conflicts():
    """Test that an update based on an old read raises a conflict."""
    aggregator, books = make_aggregator()
    stale = books.get_by_id("b1")

    aggregator.apply_rating(books.get_by_id("b1"), 4, is_new_voter=True)

    with pytest.raises(ConflictError):
        aggregator.apply_rating(stale, 2, is_new_voter=True)

    assert books.get_by_id("b1").rating == Decimal("4")


def test_rate_book_derives_new_voter():
    """Test first votes and a re-vote through the vote store."""
    aggregator, books = make_aggregator()

    aggregator.rate_book("b1", "alice", 3)
    aggregator.rate_book("b1", "bob", 5)
    book = aggregator.rate_book("b1", "alice", 5)

    assert book.rating == Decimal("4.5")
    assert book.rates_count == 2
    assert aggregator.user_rating("b1", "alice") == 5
    assert aggregator.user_rating("b1", "carol") is None


def test_rate_book_shelf_entry_counts_as_new_voter():
    """Test that a book on a shelf but never rated gets a first vote."""
    aggregator, books = make_aggregator()
    aggregator.votes.save_vote(BookUserVote("b1", "alice", state=BookState.READ))

    book = aggregator.rate_book("b1", "alice", 4)

    vote = aggregator.votes.get_vote("b1", "alice")
    assert book.rates_count == 1
    assert vote.has_rated_book
    assert vote.rate == 4
    assert vote.state == BookState.READ


class FlakyVoteStore(InMemoryVoteStore):
    """Vote store whose first write fails."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    def swap_vote(self, expected, vote):
        if self.failures:
            self.failures -= 1
            raise StoreFailure("connection reset")
        super().swap_vote(expected, vote)


class FlakyBookStore(InMemoryBookStore):
    """Book store whose first update loses a race."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    def update(self, book):
        if self.failures:
            self.failures -= 1
            raise ConflictError(f"Book {book.id} was modified concurrently")
        return super().update(book)


def test_rate_book_retry_after_vote_write_failure():
    """Test that a vote is counted once when its first write failed."""
    books = InMemoryBookStore()
    books.add(Book("b1", "Dune", "Frank Herbert"))
    aggregator = RatingAggregator(books, FlakyVoteStore(), precision=2)

    with pytest.raises(StoreFailure):
        aggregator.rate_book("b1", "alice", 5)
    assert books.get_by_id("b1").rates_count == 0

    book = aggregator.rate_book("b1", "alice", 5)

    assert book.rates_count == 1
    assert book.rating == Decimal("5")


def test_rate_book_retry_after_book_conflict():
    """Test that a failed book update puts the old vote record back."""
    books = FlakyBookStore()
    books.add(Book("b1", "Dune", "Frank Herbert"))
    votes = InMemoryVoteStore()
    votes.save_vote(BookUserVote("b1", "alice", state=BookState.WANT_TO_READ))
    aggregator = RatingAggregator(books, votes, precision=2)

    with pytest.raises(ConflictError):
        aggregator.rate_book("b1", "alice", 4)

    restored = votes.get_vote("b1", "alice")
    assert restored.has_rated_book is False
    assert restored.state == BookState.WANT_TO_READ

    book = aggregator.rate_book("b1", "alice", 4)

    assert book.rates_count == 1
    assert book.rating == Decimal("4")
    assert votes.get_vote("b1", "alice").state == BookState.WANT_TO_READ


def test_rate_book_first_vote_removed_after_book_conflict():
    """Test that a first vote leaves no record when the book update fails."""
    books = FlakyBookStore()
    books.add(Book("b1", "Dune", "Frank Herbert"))
    aggregator = RatingAggregator(books, InMemoryVoteStore(), precision=2)

    with pytest.raises(ConflictError):
        aggregator.rate_book("b1", "alice", 4)

    assert aggregator.votes.get_vote("b1", "alice") is None


def test_rate_book_double_submit_conflicts():
    """Test that a second first vote based on the same read is rejected."""
    aggregator, books = make_aggregator()
    votes = aggregator.votes
    first = BookUserVote("b1", "alice", rate=3, has_rated_book=True)
    second = BookUserVote("b1", "alice", rate=5, has_rated_book=True)

    votes.swap_vote(None, first)
    with pytest.raises(ConflictError):
        votes.swap_vote(None, second)

    assert votes.get_vote("b1", "alice").rate == 3


@pytest.mark.parametrize("rate", [4.9, "5", Decimal("4"), True])
def test_non_int_rate_rejected(rate):
    """Test that non-integer votes raise TypeError instead of being truncated."""
    aggregator, books = make_aggregator()

    with pytest.raises(TypeError):
        aggregator.apply_rating(books.get_by_id("b1"), rate, is_new_voter=True)
    with pytest.raises(TypeError):
        aggregator.rate_book("b1", "alice", rate)

    assert books.get_by_id("b1").rates_count == 0
    assert aggregator.votes.get_vote("b1", "alice") is None
