"""Request-level catalog operations built on the taxonomy, rating and comment engines."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from bookcatalog.comments import CommentAuthorizationEvaluator
from bookcatalog.config import Config
from bookcatalog.database import (
    Database, PostgresBookStore, PostgresCommentStore, PostgresEntityStore,
    PostgresIdentityStore, PostgresVoteStore
)
from bookcatalog.linker import TaxonomyLinker
from bookcatalog.models import Book, BookEntityLink, BookState, BookUserVote, Comment, EntityKind
from bookcatalog.rating import RatingAggregator
from bookcatalog.shelves import ShelfManager
from bookcatalog.stores import BookStore, CommentStore, EntityStore, IdentityStore, VoteStore

logger = logging.getLogger(__name__)


@dataclass
class BookDetails:
    """Everything the book page shows for one viewer."""
    book: Book
    genres: List[str]
    tags: List[str]
    comments: List[Comment]
    is_rated: bool = False
    user_rating: int = 0


@dataclass
class BookSubmission:
    """Result of adding a book with its taxonomy text."""
    book: Book
    links: List[BookEntityLink] = field(default_factory=list)


class CatalogService:
    """Facade over the stores and the taxonomy, rating and comment engines."""

    def __init__(
        self,
        books: BookStore,
        entities: EntityStore,
        identities: IdentityStore,
        votes: VoteStore,
        comments: CommentStore,
        config: Optional[Config] = None
    ):
        config = config or Config()
        self.books = books
        self.entities = entities
        self.identities = identities
        self.comments = comments
        self.linker = TaxonomyLinker(entities, dedupe_links=config.DEDUPE_LINKS)
        self.ratings = RatingAggregator(books, votes, precision=config.RATING_PRECISION)
        self.authorization = CommentAuthorizationEvaluator(identities)
        self.shelves = ShelfManager(books, votes)

    @classmethod
    def from_database(cls, db: Database, config: Optional[Config] = None) -> "CatalogService":
        """Build a service backed by PostgreSQL stores sharing one pool."""
        return cls(
            books=PostgresBookStore(db),
            entities=PostgresEntityStore(db),
            identities=PostgresIdentityStore(db),
            votes=PostgresVoteStore(db),
            comments=PostgresCommentStore(db),
            config=config
        )

    def add_book(
        self,
        book: Book,
        genres_text: Optional[str] = None,
        tags_text: Optional[str] = None
    ) -> BookSubmission:
        """
        Store a new book and link the genres and tags typed for it.

        Args:
            book: Book to add
            genres_text: Delimited genre names, e.g. "Fantasy, Adventure"
            tags_text: Delimited tag values

        Returns:
            The book and the links created for it
        """
        self.books.add(book)
        links = self.linker.link_taxonomy(book.id, genres_text, tags_text)
        logger.info(f"Added book {book.id} '{book.title}' with {len(links)} link(s)")
        return BookSubmission(book=book, links=links)

    def link_taxonomy(
        self,
        book_id: str,
        genres_text: Optional[str],
        tags_text: Optional[str]
    ) -> List[BookEntityLink]:
        return self.linker.link_taxonomy(book_id, genres_text, tags_text)

    def rate_book(self, book_id: str, username: str, rate: int) -> Book:
        """
        Record ``username``'s vote on a book.

        Raises:
            UnknownIdentity: Username is not a known user
            ConflictError: Book changed concurrently; safe to retry
        """
        user = self.identities.get_user(username)
        return self.ratings.rate_book(book_id, user.id, rate)

    def shelve_book(self, book_id: str, username: str, state: BookState) -> BookUserVote:
        """
        Put a book on one of ``username``'s shelves, moving it if needed.

        Raises:
            UnknownIdentity: Username is not a known user
            AlreadyShelved: Book is already on that shelf
        """
        user = self.identities.get_user(username)
        return self.shelves.shelve_book(book_id, user.id, state)

    def remove_from_shelf(self, book_id: str, username: str):
        user = self.identities.get_user(username)
        self.shelves.remove_from_shelf(book_id, user.id)

    def books_on_shelf(self, username: str, state: BookState) -> List[Book]:
        user = self.identities.get_user(username)
        return self.shelves.books_on_shelf(user.id, state)

    def books_for_entity(self, kind: EntityKind, label: str) -> List[Book]:
        """Books linked to a genre name or tag value; unknown labels give []."""
        return [self.books.get_by_id(book_id) for book_id in self.entities.books_for_entity(kind, label)]

    def add_comment(self, book_id: str, username: str, content: str) -> Comment:
        user = self.identities.get_user(username)
        comment = Comment(
            comment_id=str(uuid.uuid4()),
            book_id=book_id,
            author=user.username,
            content=content,
            date=datetime.now(),
            user_id=user.id
        )
        return self.comments.add_comment(comment)

    def list_comments(self, book_id: str, viewer_username: Optional[str] = None) -> List[Comment]:
        """Comments on a book with author pictures and the viewer's edit rights."""
        comments = self.comments.comments_for_book(book_id)
        self.authorization.attach_author_pictures(comments)
        return self.authorization.evaluate(comments, viewer_username)

    def book_details(self, book_id: str, viewer_username: Optional[str] = None) -> BookDetails:
        """
        Gather the book page for a viewer.

        Args:
            book_id: Book to show
            viewer_username: Current user, or None when anonymous

        Returns:
            Book, genre names, tag values, annotated comments and the
            viewer's own rating
        """
        book = self.books.get_by_id(book_id)
        genres = [g.name for g in self.entities.links_for_book(book_id, EntityKind.GENRE)]
        tags = [t.value for t in self.entities.links_for_book(book_id, EntityKind.TAG)]
        comments = self.list_comments(book_id, viewer_username)

        user_rating = None
        if viewer_username is not None:
            viewer = self.identities.get_user(viewer_username)
            user_rating = self.ratings.user_rating(book_id, viewer.id)

        return BookDetails(
            book=book,
            genres=genres,
            tags=tags,
            comments=comments,
            is_rated=user_rating is not None,
            user_rating=user_rating or 0
        )
