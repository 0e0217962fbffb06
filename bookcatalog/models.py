"""Data models for books, taxonomy, votes and comments."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class EntityKind(str, Enum):
    """Collection a canonical entity belongs to."""
    GENRE = "genre"
    TAG = "tag"


class BookState(str, Enum):
    """Shelf a user keeps a book on. Independent of rating."""
    DEFAULT = "default"
    WANT_TO_READ = "want_to_read"
    CURRENTLY_READING = "currently_reading"
    READ = "read"


@dataclass
class Book:
    """Catalog book with its aggregated rating."""
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    publication_date: Optional[str] = None
    cover_url: Optional[str] = None
    rating: Decimal = Decimal("0")
    rates_count: int = 0
    version: int = 0

    @property
    def rating_str(self) -> str:
        """Format rating for display."""
        return f"{self.rating} ({self.rates_count} votes)" if self.rates_count else "Not rated"


@dataclass(frozen=True)
class CanonicalEntity:
    """Deduplicated genre or tag, unique per (kind, label)."""
    id: str
    label: str
    kind: EntityKind

    @property
    def name(self) -> str:
        """Genre name."""
        return self.label

    @property
    def value(self) -> str:
        """Tag value."""
        return self.label

    @classmethod
    def genre(cls, id: str, name: str) -> "CanonicalEntity":
        return cls(id=id, label=name, kind=EntityKind.GENRE)

    @classmethod
    def tag(cls, id: str, value: str) -> "CanonicalEntity":
        return cls(id=id, label=value, kind=EntityKind.TAG)


@dataclass(frozen=True)
class BookEntityLink:
    """Association between a book and a genre or tag."""
    book_id: str
    entity_id: str
    kind: EntityKind


@dataclass
class BookUserVote:
    """A user's relation to a book: their vote and shelf."""
    book_id: str
    user_id: str
    rate: int = 0
    has_rated_book: bool = False
    state: BookState = BookState.DEFAULT


@dataclass
class User:
    """Identity as seen by the catalog."""
    id: str
    username: str
    is_admin: bool = False
    profile_picture_url: Optional[str] = None


@dataclass
class Comment:
    """Comment on a book. ``can_edit`` is computed per viewer, never stored."""
    comment_id: str
    book_id: str
    author: str
    content: str
    date: datetime = field(default_factory=datetime.now)
    user_id: Optional[str] = None
    author_pic_url: Optional[str] = None
    can_edit: bool = False
