"""Running book ratings without keeping the vote history."""
import logging
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from bookcatalog.config import Config
from bookcatalog.errors import CatalogError, PreconditionViolation
from bookcatalog.models import Book, BookUserVote
from bookcatalog.stores import BookStore, VoteStore

logger = logging.getLogger(__name__)


class RatingAggregator:
    """
    Maintain a book's mean rating and vote count.

    The mean is folded one vote at a time and rounded to ``precision``
    decimal places after every update, so the same sequence of votes
    always yields the same stored rating. Concurrent updates of one book
    surface as ``ConflictError`` from the book store; retrying is up to
    the caller.
    """

    def __init__(
        self,
        books: BookStore,
        votes: Optional[VoteStore] = None,
        precision: Optional[int] = None
    ):
        """
        Initialize aggregator.

        Args:
            books: Book store holding rating and rates_count
            votes: Vote store, required by ``rate_book``
            precision: Decimal places kept (default: ``Config.RATING_PRECISION``)
        """
        self.books = books
        self.votes = votes
        places = Config.RATING_PRECISION if precision is None else precision
        self.quantum = Decimal(1).scaleb(-places)

    def apply_rating(self, book: Book, submitted_rate: int, is_new_voter: bool) -> Book:
        """
        Fold a vote into the book's rating and persist it.

        The rate is not range-checked; callers validate it.

        Args:
            book: Book as read from the store
            submitted_rate: Integer vote
            is_new_voter: True for a first vote, False when replacing one

        Returns:
            Updated book as stored

        Raises:
            TypeError: ``submitted_rate`` is not an int
            PreconditionViolation: Replacing a vote on a book with no votes
            StoreFailure: Propagated from the book store
        """
        count = book.rates_count
        if count < 0:
            raise PreconditionViolation(f"Book {book.id} has a negative vote count: {count}")

        old_rating = Decimal(book.rating)
        _check_rate(submitted_rate)
        rate = Decimal(submitted_rate)

        if is_new_voter:
            new_count = count + 1
            new_rating = (old_rating * count + rate) / new_count
        else:
            if count == 0:
                raise PreconditionViolation(
                    f"Cannot replace a vote on book {book.id}: it has no votes"
                )
            new_count = count
            new_rating = (old_rating * (count - 1) + rate) / count

        new_rating = new_rating.quantize(self.quantum, rounding=ROUND_HALF_UP)
        updated = self.books.update(replace(book, rating=new_rating, rates_count=new_count))

        logger.info(
            f"Book {book.id} rating {old_rating} -> {updated.rating} "
            f"({updated.rates_count} votes, new voter: {is_new_voter})"
        )
        return updated

    def rate_book(self, book_id: str, user_id: str, rate: int) -> Book:
        """
        Record a user's vote and update the book rating.

        Whether the user is a new voter is derived from the stored vote
        record instead of being trusted from the caller. A record that only
        holds a shelf state counts as a first vote.

        The vote record is written first, as a compare-and-swap against the
        record that was read. If the book update then fails, the previous
        record is put back, so a retry sees the same voter status and the
        vote is counted once.

        Args:
            book_id: Book being rated
            user_id: Voting user
            rate: Integer vote

        Returns:
            Updated book

        Raises:
            ConflictError: Book or vote record changed concurrently; retry
        """
        if self.votes is None:
            raise PreconditionViolation("rate_book needs a vote store")
        _check_rate(rate)

        book = self.books.get_by_id(book_id)
        previous = self.votes.get_vote(book_id, user_id)
        is_new_voter = previous is None or not previous.has_rated_book

        if previous is None:
            vote = BookUserVote(book_id=book_id, user_id=user_id)
        else:
            vote = replace(previous)
        vote.rate = rate
        vote.has_rated_book = True
        self.votes.swap_vote(previous, vote)

        try:
            return self.apply_rating(book, rate, is_new_voter)
        except Exception:
            self._restore_vote(vote, previous)
            raise

    def _restore_vote(self, vote: BookUserVote, previous: Optional[BookUserVote]):
        try:
            self.votes.swap_vote(vote, previous)
        except CatalogError as e:
            logger.error(f"Could not restore vote of user {vote.user_id} on book {vote.book_id}: {e}")
        else:
            logger.warning(f"Rating of book {vote.book_id} failed; vote of user {vote.user_id} restored")

    def user_rating(self, book_id: str, user_id: str) -> Optional[int]:
        """Return the user's current vote on a book, or None if not rated."""
        if self.votes is None:
            return None

        vote = self.votes.get_vote(book_id, user_id)
        if vote is None or not vote.has_rated_book:
            return None
        return vote.rate


def _check_rate(rate):
    # bool is an int subclass but never a vote
    if isinstance(rate, bool) or not isinstance(rate, int):
        raise TypeError(f"Rate must be an int, got {type(rate).__name__}: {rate!r}")
