"""Reading shelves kept on the per (book, user) records."""
import logging
from dataclasses import replace
from typing import List

from bookcatalog.errors import AlreadyShelved, NotFoundError, PreconditionViolation
from bookcatalog.models import Book, BookState, BookUserVote
from bookcatalog.stores import BookStore, VoteStore

logger = logging.getLogger(__name__)


class ShelfManager:
    """
    Put books on a user's shelves, move them between shelves and list them.

    A shelf is the ``state`` of the user's record for a book, the same
    record that holds the user's vote. Taking a rated book off its shelf
    keeps the record, so the vote stays counted in the book's rating.
    Writes are compare-and-swap against the record that was read, the same
    way ``RatingAggregator.rate_book`` writes votes.
    """

    def __init__(self, books: BookStore, votes: VoteStore):
        self.books = books
        self.votes = votes

    def shelve_book(self, book_id: str, user_id: str, state: BookState) -> BookUserVote:
        """
        Add a book to a shelf, or move it from the shelf it is on.

        Args:
            book_id: Book to shelve
            user_id: Owner of the shelf
            state: Target shelf

        Returns:
            Stored record

        Raises:
            PreconditionViolation: ``state`` is ``BookState.DEFAULT``
            AlreadyShelved: Book is already on that shelf
            NotFoundError: Book does not exist
            ConflictError: Record changed concurrently; retry
        """
        if state == BookState.DEFAULT:
            raise PreconditionViolation("Choose a shelf to put the book on")

        self.books.get_by_id(book_id)
        previous = self.votes.get_vote(book_id, user_id)
        if previous is not None and previous.state == state:
            raise AlreadyShelved(f"Book {book_id} is already on the {state.value} shelf")

        if previous is None:
            vote = BookUserVote(book_id=book_id, user_id=user_id, state=state)
        else:
            vote = replace(previous, state=state)
        self.votes.swap_vote(previous, vote)

        logger.info(f"User {user_id} put book {book_id} on the {state.value} shelf")
        return vote

    def remove_from_shelf(self, book_id: str, user_id: str):
        """
        Take a book off the user's shelf.

        Raises:
            NotFoundError: Book is on none of the user's shelves
            ConflictError: Record changed concurrently; retry
        """
        previous = self.votes.get_vote(book_id, user_id)
        if previous is None or previous.state == BookState.DEFAULT:
            raise NotFoundError(f"Book {book_id} is not on a shelf of user {user_id}")

        if previous.has_rated_book:
            self.votes.swap_vote(previous, replace(previous, state=BookState.DEFAULT))
        else:
            self.votes.swap_vote(previous, None)

        logger.info(f"User {user_id} removed book {book_id} from the {previous.state.value} shelf")

    def books_on_shelf(self, user_id: str, state: BookState) -> List[Book]:
        """Books on one of the user's shelves, ordered by book id."""
        return [
            self.books.get_by_id(vote.book_id)
            for vote in self.votes.votes_for_user(user_id, state)
        ]
