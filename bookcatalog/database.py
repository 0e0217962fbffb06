"""PostgreSQL storage for books, taxonomy, votes, users and comments."""
import psycopg2
from psycopg2 import pool
from contextlib import contextmanager
from decimal import Decimal
from typing import Optional, List, Dict, Any
import logging

from bookcatalog.errors import ConflictError, NotFoundError, StoreFailure, UnknownIdentity
from bookcatalog.models import (
    Book, BookState, BookUserVote, CanonicalEntity, Comment, EntityKind, User
)

logger = logging.getLogger(__name__)

# kind -> (entity table, label column, link table, link column)
ENTITY_TABLES = {
    EntityKind.GENRE: ("genres", "name", "book_genres", "genre_id"),
    EntityKind.TAG: ("tags", "value", "book_tags", "tag_id"),
}

BOOK_COLUMNS = """
    id, title, author, isbn, publication_date, cover_url,
    rating, rates_count, version
"""


class Database:
    """PostgreSQL database with connection pooling."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        self.connection_pool = psycopg2.pool.SimpleConnectionPool(
            min_conn,
            max_conn,
            connection_string
        )

        if self.connection_pool:
            logger.info("Database connection pool created successfully")
        else:
            raise StoreFailure("Failed to create connection pool")

    @contextmanager
    def cursor(self):
        """
        Borrow a pooled connection and yield a cursor.

        Commits on success. On a database error the transaction is
        rolled back and the error re-raised as ``StoreFailure``.
        """
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.warning(f"Database error: {e}")
            raise StoreFailure(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self.connection_pool.putconn(conn)

    def init_schema(self, rating_precision: int = 2):
        """
        Create database tables if they don't exist.

        Args:
            rating_precision: Decimal places of the rating column; match
                ``Config.RATING_PRECISION`` so stored ratings are not rounded
                again. An existing books table keeps its column type.
        """
        if not isinstance(rating_precision, int) or rating_precision < 0:
            raise ValueError(f"rating_precision must be a non-negative int, got {rating_precision!r}")
        # Four integer digits, then the configured scale
        rating_type = f"NUMERIC({4 + rating_precision}, {rating_precision})"

        with self.cursor() as cur:
            cur.execute(f"""
                CREATE TABLE IF NOT EXISTS books (
                    id VARCHAR(255) PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    isbn VARCHAR(32),
                    publication_date VARCHAR(50),
                    cover_url TEXT,
                    rating {rating_type} NOT NULL DEFAULT 0,
                    rates_count INTEGER NOT NULL DEFAULT 0 CHECK (rates_count >= 0),
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS genres (
                    id VARCHAR(64) PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    id VARCHAR(64) PRIMARY KEY,
                    value TEXT NOT NULL UNIQUE
                )
            """)

            # Links carry their own id: repeated labels may link twice
            cur.execute("""
                CREATE TABLE IF NOT EXISTS book_genres (
                    id SERIAL PRIMARY KEY,
                    book_id VARCHAR(255) NOT NULL REFERENCES books (id) ON DELETE CASCADE,
                    genre_id VARCHAR(64) NOT NULL REFERENCES genres (id) ON DELETE CASCADE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS book_tags (
                    id SERIAL PRIMARY KEY,
                    book_id VARCHAR(255) NOT NULL REFERENCES books (id) ON DELETE CASCADE,
                    tag_id VARCHAR(64) NOT NULL REFERENCES tags (id) ON DELETE CASCADE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id VARCHAR(255) PRIMARY KEY,
                    username VARCHAR(255) NOT NULL UNIQUE,
                    is_admin BOOLEAN NOT NULL DEFAULT FALSE,
                    profile_picture_url TEXT
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS book_users (
                    book_id VARCHAR(255) NOT NULL REFERENCES books (id) ON DELETE CASCADE,
                    user_id VARCHAR(255) NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                    rate INTEGER NOT NULL DEFAULT 0,
                    has_rated_book BOOLEAN NOT NULL DEFAULT FALSE,
                    state VARCHAR(32) NOT NULL DEFAULT 'default',
                    PRIMARY KEY (book_id, user_id)
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    id VARCHAR(64) PRIMARY KEY,
                    book_id VARCHAR(255) NOT NULL REFERENCES books (id) ON DELETE CASCADE,
                    user_id VARCHAR(255),
                    author VARCHAR(255) NOT NULL,
                    content TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_book_genres_book
                ON book_genres (book_id)
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_book_tags_book
                ON book_tags (book_id)
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_comments_book
                ON comments (book_id, created_at)
            """)

        logger.info("Database schema initialized successfully")

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        stats = {}
        with self.cursor() as cur:
            for key, table in (
                ("total_books", "books"),
                ("genres", "genres"),
                ("tags", "tags"),
                ("genre_links", "book_genres"),
                ("tag_links", "book_tags"),
                ("votes", "book_users"),
                ("comments", "comments"),
            ):
                cur.execute(f"SELECT COUNT(*) FROM {table}")
                stats[key] = cur.fetchone()[0]

            cur.execute("SELECT COUNT(*) FROM book_users WHERE has_rated_book")
            stats["rated"] = cur.fetchone()[0]

        return stats

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class PostgresEntityStore:
    """Genres and tags. Label uniqueness is enforced by the schema."""

    def __init__(self, db: Database):
        self.db = db

    def find_by_label(self, kind: EntityKind, label: str) -> Optional[CanonicalEntity]:
        table, column, _, _ = ENTITY_TABLES[kind]
        with self.db.cursor() as cur:
            cur.execute(f"SELECT id, {column} FROM {table} WHERE {column} = %s", (label,))
            row = cur.fetchone()

        if row:
            return CanonicalEntity(id=row[0], label=row[1], kind=kind)
        return None

    def create(self, entity: CanonicalEntity) -> CanonicalEntity:
        table, column, _, _ = ENTITY_TABLES[entity.kind]
        with self.db.cursor() as cur:
            cur.execute(
                f"INSERT INTO {table} (id, {column}) VALUES (%s, %s)",
                (entity.id, entity.label)
            )
        return entity

    def create_if_absent(self, entity: CanonicalEntity) -> CanonicalEntity:
        """
        Insert the entity unless its label already exists.

        Returns:
            The inserted entity, or the one that won a concurrent insert
        """
        table, column, _, _ = ENTITY_TABLES[entity.kind]
        with self.db.cursor() as cur:
            cur.execute(f"""
                INSERT INTO {table} (id, {column}) VALUES (%s, %s)
                ON CONFLICT ({column}) DO NOTHING
                RETURNING id
            """, (entity.id, entity.label))

            if cur.fetchone():
                return entity

            cur.execute(f"SELECT id, {column} FROM {table} WHERE {column} = %s", (entity.label,))
            row = cur.fetchone()

        if row is None:
            raise StoreFailure(f"{entity.kind.value} '{entity.label}' vanished after conflicting insert")
        return CanonicalEntity(id=row[0], label=row[1], kind=entity.kind)

    def create_link(self, book_id: str, entity_id: str, kind: EntityKind) -> None:
        _, _, link_table, link_column = ENTITY_TABLES[kind]
        with self.db.cursor() as cur:
            cur.execute(
                f"INSERT INTO {link_table} (book_id, {link_column}) VALUES (%s, %s)",
                (book_id, entity_id)
            )

    def links_for_book(self, book_id: str, kind: EntityKind) -> List[CanonicalEntity]:
        table, column, link_table, link_column = ENTITY_TABLES[kind]
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT e.id, e.{column}
                FROM {link_table} l
                JOIN {table} e ON e.id = l.{link_column}
                WHERE l.book_id = %s
                ORDER BY l.id
            """, (book_id,))
            rows = cur.fetchall()

        return [CanonicalEntity(id=row[0], label=row[1], kind=kind) for row in rows]

    def books_for_entity(self, kind: EntityKind, label: str) -> List[str]:
        """Return ids of books linked to ``label``, first link first, without repeats."""
        table, column, link_table, link_column = ENTITY_TABLES[kind]
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT l.book_id
                FROM {link_table} l
                JOIN {table} e ON e.id = l.{link_column}
                WHERE e.{column} = %s
                GROUP BY l.book_id
                ORDER BY MIN(l.id)
            """, (label,))
            rows = cur.fetchall()

        return [row[0] for row in rows]


class PostgresBookStore:
    """Books with optimistic concurrency on ``version``."""

    def __init__(self, db: Database):
        self.db = db

    def get_by_id(self, book_id: str) -> Book:
        with self.db.cursor() as cur:
            cur.execute(f"SELECT {BOOK_COLUMNS} FROM books WHERE id = %s", (book_id,))
            row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"Book not found: {book_id}")
        return _book_from_row(row)

    def add(self, book: Book) -> Book:
        with self.db.cursor() as cur:
            cur.execute("""
                INSERT INTO books (
                    id, title, author, isbn, publication_date, cover_url,
                    rating, rates_count, version
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                book.id, book.title, book.author, book.isbn, book.publication_date,
                book.cover_url, book.rating, book.rates_count, book.version
            ))
        return book

    def update(self, book: Book) -> Book:
        """
        Write the book if nobody changed it since it was read.

        Raises:
            ConflictError: Stored version differs from ``book.version``
            NotFoundError: Book no longer exists
        """
        with self.db.cursor() as cur:
            cur.execute(f"""
                UPDATE books SET
                    title = %s, author = %s, isbn = %s, publication_date = %s,
                    cover_url = %s, rating = %s, rates_count = %s,
                    version = version + 1
                WHERE id = %s AND version = %s
                RETURNING {BOOK_COLUMNS}
            """, (
                book.title, book.author, book.isbn, book.publication_date,
                book.cover_url, book.rating, book.rates_count,
                book.id, book.version
            ))
            row = cur.fetchone()

            if row is None:
                cur.execute("SELECT version FROM books WHERE id = %s", (book.id,))
                current = cur.fetchone()

        if row is None:
            if current is None:
                raise NotFoundError(f"Book not found: {book.id}")
            logger.warning(f"Version conflict on book {book.id}: expected {book.version}, found {current[0]}")
            raise ConflictError(f"Book {book.id} was modified concurrently")
        return _book_from_row(row)


class PostgresIdentityStore:
    """Users looked up by username."""

    def __init__(self, db: Database):
        self.db = db

    def get_user(self, username: str) -> User:
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT id, username, is_admin, profile_picture_url
                FROM users WHERE username = %s
            """, (username,))
            row = cur.fetchone()

        if row is None:
            raise UnknownIdentity(username)
        return User(*row)

    def is_admin(self, username: str) -> bool:
        return self.get_user(username).is_admin


class PostgresVoteStore:
    """Per (book, user) votes and shelves."""

    def __init__(self, db: Database):
        self.db = db

    def get_vote(self, book_id: str, user_id: str) -> Optional[BookUserVote]:
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT book_id, user_id, rate, has_rated_book, state
                FROM book_users WHERE book_id = %s AND user_id = %s
            """, (book_id, user_id))
            row = cur.fetchone()

        if row is None:
            return None
        return _vote_from_row(row)

    def save_vote(self, vote: BookUserVote) -> None:
        with self.db.cursor() as cur:
            cur.execute("""
                INSERT INTO book_users (book_id, user_id, rate, has_rated_book, state)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (book_id, user_id) DO UPDATE SET
                    rate = EXCLUDED.rate,
                    has_rated_book = EXCLUDED.has_rated_book,
                    state = EXCLUDED.state
            """, (vote.book_id, vote.user_id, vote.rate, vote.has_rated_book, vote.state.value))

    def swap_vote(self, expected: Optional[BookUserVote], vote: Optional[BookUserVote]) -> None:
        """
        Replace the stored record only if it still equals ``expected``.

        ``expected=None`` inserts only when no row exists; ``vote=None``
        deletes the row.

        Raises:
            ConflictError: Stored row differs from ``expected``
        """
        target = vote or expected
        if target is None:
            return

        with self.db.cursor() as cur:
            if expected is None:
                cur.execute("""
                    INSERT INTO book_users (book_id, user_id, rate, has_rated_book, state)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (book_id, user_id) DO NOTHING
                    RETURNING book_id
                """, (vote.book_id, vote.user_id, vote.rate, vote.has_rated_book, vote.state.value))
            elif vote is None:
                cur.execute("""
                    DELETE FROM book_users
                    WHERE book_id = %s AND user_id = %s
                      AND rate = %s AND has_rated_book = %s AND state = %s
                    RETURNING book_id
                """, (
                    expected.book_id, expected.user_id,
                    expected.rate, expected.has_rated_book, expected.state.value
                ))
            else:
                cur.execute("""
                    UPDATE book_users SET rate = %s, has_rated_book = %s, state = %s
                    WHERE book_id = %s AND user_id = %s
                      AND rate = %s AND has_rated_book = %s AND state = %s
                    RETURNING book_id
                """, (
                    vote.rate, vote.has_rated_book, vote.state.value,
                    expected.book_id, expected.user_id,
                    expected.rate, expected.has_rated_book, expected.state.value
                ))
            row = cur.fetchone()

        if row is None:
            logger.warning(f"Vote conflict for user {target.user_id} on book {target.book_id}")
            raise ConflictError(
                f"Vote of user {target.user_id} on book {target.book_id} was modified concurrently"
            )

    def votes_for_user(self, user_id: str, state: BookState) -> List[BookUserVote]:
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT book_id, user_id, rate, has_rated_book, state
                FROM book_users WHERE user_id = %s AND state = %s
                ORDER BY book_id
            """, (user_id, state.value))
            rows = cur.fetchall()

        return [_vote_from_row(row) for row in rows]


class PostgresCommentStore:
    """Comments per book, oldest first."""

    def __init__(self, db: Database):
        self.db = db

    def comments_for_book(self, book_id: str) -> List[Comment]:
        with self.db.cursor() as cur:
            cur.execute("""
                SELECT id, book_id, author, content, created_at, user_id
                FROM comments WHERE book_id = %s
                ORDER BY created_at, id
            """, (book_id,))
            rows = cur.fetchall()

        return [
            Comment(
                comment_id=row[0],
                book_id=row[1],
                author=row[2],
                content=row[3],
                date=row[4],
                user_id=row[5]
            )
            for row in rows
        ]

    def add_comment(self, comment: Comment) -> Comment:
        with self.db.cursor() as cur:
            cur.execute("""
                INSERT INTO comments (id, book_id, user_id, author, content, created_at)
                VALUES (%s, %s, %s, %s, %s, %s)
            """, (
                comment.comment_id, comment.book_id, comment.user_id,
                comment.author, comment.content, comment.date
            ))
        return comment


def _book_from_row(row) -> Book:
    return Book(
        id=row[0],
        title=row[1],
        author=row[2],
        isbn=row[3],
        publication_date=row[4],
        cover_url=row[5],
        rating=Decimal(row[6]),
        rates_count=row[7],
        version=row[8]
    )


def _vote_from_row(row) -> BookUserVote:
    return BookUserVote(
        book_id=row[0],
        user_id=row[1],
        rate=row[2],
        has_rated_book=row[3],
        state=BookState(row[4])
    )
