"""Store contracts used by the engine, with in-memory implementations."""
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Protocol, Tuple

from bookcatalog.errors import ConflictError, NotFoundError, UnknownIdentity
from bookcatalog.models import (
    Book, BookEntityLink, BookState, BookUserVote, CanonicalEntity, Comment, EntityKind, User
)


class EntityStore(Protocol):
    """Genre and tag persistence."""

    def find_by_label(self, kind: EntityKind, label: str) -> Optional[CanonicalEntity]:
        ...

    def create(self, entity: CanonicalEntity) -> CanonicalEntity:
        ...

    def create_link(self, book_id: str, entity_id: str, kind: EntityKind) -> None:
        ...

    def links_for_book(self, book_id: str, kind: EntityKind) -> List[CanonicalEntity]:
        ...

    def books_for_entity(self, kind: EntityKind, label: str) -> List[str]:
        ...


class BookStore(Protocol):
    """Book persistence with optimistic concurrency on ``version``."""

    def get_by_id(self, book_id: str) -> Book:
        ...

    def add(self, book: Book) -> Book:
        ...

    def update(self, book: Book) -> Book:
        ...


class IdentityStore(Protocol):
    """User lookup."""

    def get_user(self, username: str) -> User:
        ...

    def is_admin(self, username: str) -> bool:
        ...


class VoteStore(Protocol):
    """Per (book, user) vote and shelf records."""

    def get_vote(self, book_id: str, user_id: str) -> Optional[BookUserVote]:
        ...

    def save_vote(self, vote: BookUserVote) -> None:
        ...

    def swap_vote(self, expected: Optional[BookUserVote], vote: Optional[BookUserVote]) -> None:
        ...

    def votes_for_user(self, user_id: str, state: BookState) -> List[BookUserVote]:
        ...


class CommentStore(Protocol):
    """Comments per book."""

    def comments_for_book(self, book_id: str) -> List[Comment]:
        ...

    def add_comment(self, comment: Comment) -> Comment:
        ...


class InMemoryEntityStore:
    """Entity store kept in dictionaries. Offers a conditional insert."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entities: Dict[Tuple[EntityKind, str], CanonicalEntity] = {}
        self.links: List[BookEntityLink] = []

    def find_by_label(self, kind: EntityKind, label: str) -> Optional[CanonicalEntity]:
        return self._entities.get((kind, label))

    def create(self, entity: CanonicalEntity) -> CanonicalEntity:
        with self._lock:
            self._entities[(entity.kind, entity.label)] = entity
        return entity

    def create_if_absent(self, entity: CanonicalEntity) -> CanonicalEntity:
        """Insert ``entity`` unless its label exists; return the stored one."""
        with self._lock:
            return self._entities.setdefault((entity.kind, entity.label), entity)

    def create_link(self, book_id: str, entity_id: str, kind: EntityKind) -> None:
        with self._lock:
            self.links.append(BookEntityLink(book_id=book_id, entity_id=entity_id, kind=kind))

    def links_for_book(self, book_id: str, kind: EntityKind) -> List[CanonicalEntity]:
        by_id = {e.id: e for e in self._entities.values()}
        return [
            by_id[link.entity_id]
            for link in self.links
            if link.book_id == book_id and link.kind == kind and link.entity_id in by_id
        ]

    def books_for_entity(self, kind: EntityKind, label: str) -> List[str]:
        """Return ids of books linked to ``label``, first link first, without repeats."""
        entity = self._entities.get((kind, label))
        if entity is None:
            return []

        book_ids = []
        for link in self.links:
            if link.kind == kind and link.entity_id == entity.id and link.book_id not in book_ids:
                book_ids.append(link.book_id)
        return book_ids

    def all(self, kind: EntityKind) -> List[CanonicalEntity]:
        return [e for (k, _), e in self._entities.items() if k == kind]


class InMemoryBookStore:
    """Book store with compare-and-swap on the ``version`` field."""

    def __init__(self):
        self._lock = threading.Lock()
        self._books: Dict[str, Book] = {}

    def get_by_id(self, book_id: str) -> Book:
        book = self._books.get(book_id)
        if book is None:
            raise NotFoundError(f"Book not found: {book_id}")
        return replace(book)

    def add(self, book: Book) -> Book:
        with self._lock:
            self._books[book.id] = replace(book)
        return book

    def update(self, book: Book) -> Book:
        with self._lock:
            stored = self._books.get(book.id)
            if stored is None:
                raise NotFoundError(f"Book not found: {book.id}")
            if stored.version != book.version:
                raise ConflictError(
                    f"Book {book.id} was modified concurrently "
                    f"(expected version {book.version}, found {stored.version})"
                )
            updated = replace(book, version=book.version + 1)
            self._books[book.id] = updated
        return replace(updated)


class InMemoryIdentityStore:
    """Identity store keyed by username."""

    def __init__(self, users: Optional[List[User]] = None):
        self._users: Dict[str, User] = {u.username: u for u in (users or [])}

    def add(self, user: User) -> User:
        self._users[user.username] = user
        return user

    def get_user(self, username: str) -> User:
        user = self._users.get(username)
        if user is None:
            raise UnknownIdentity(username)
        return user

    def is_admin(self, username: str) -> bool:
        return self.get_user(username).is_admin


class InMemoryVoteStore:
    """Vote store keyed by (book_id, user_id)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._votes: Dict[Tuple[str, str], BookUserVote] = {}

    def get_vote(self, book_id: str, user_id: str) -> Optional[BookUserVote]:
        vote = self._votes.get((book_id, user_id))
        return replace(vote) if vote else None

    def save_vote(self, vote: BookUserVote) -> None:
        with self._lock:
            self._votes[(vote.book_id, vote.user_id)] = replace(vote)

    def swap_vote(self, expected: Optional[BookUserVote], vote: Optional[BookUserVote]) -> None:
        """
        Replace the stored record only if it still equals ``expected``.

        ``expected=None`` means no record may exist yet; ``vote=None``
        deletes the record.

        Raises:
            ConflictError: Stored record differs from ``expected``
        """
        target = vote or expected
        if target is None:
            return
        key = (target.book_id, target.user_id)

        with self._lock:
            if self._votes.get(key) != expected:
                raise ConflictError(
                    f"Vote of user {target.user_id} on book {target.book_id} was modified concurrently"
                )
            if vote is None:
                del self._votes[key]
            else:
                self._votes[key] = replace(vote)

    def votes_for_user(self, user_id: str, state: BookState) -> List[BookUserVote]:
        with self._lock:
            items = sorted(self._votes.items())
        return [replace(v) for (_, uid), v in items if uid == user_id and v.state == state]


class InMemoryCommentStore:
    """Comments kept in insertion order."""

    def __init__(self):
        self._comments: List[Comment] = []

    def comments_for_book(self, book_id: str) -> List[Comment]:
        return [replace(c) for c in self._comments if c.book_id == book_id]

    def add_comment(self, comment: Comment) -> Comment:
        self._comments.append(replace(comment))
        return comment
