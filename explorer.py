#!/usr/bin/env python3
"""Book Catalog CLI - taxonomy, ratings, shelves and comments."""
import argparse
import sys
import json
from tabulate import tabulate
from bookcatalog.config import Config
from bookcatalog.database import Database
from bookcatalog.errors import CatalogError
from bookcatalog.models import BookState, EntityKind
from bookcatalog.services import CatalogService
import logging

logger = logging.getLogger(__name__)


def setup_logging(config: Config):
    """Configure root logging for the CLI."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


def setup_database(config: Config) -> Database:
    """Open the connection pool."""
    return Database(config.DATABASE_URL, config.DB_MIN_CONN, config.DB_MAX_CONN)


def init_db(args, config: Config):
    """Create the schema."""
    with setup_database(config) as db:
        db.init_schema(config.RATING_PRECISION)
    print("✅ Schema ready")


def link_taxonomy(args, config: Config):
    """Link genres and tags typed as free text to a book."""
    with setup_database(config) as db:
        service = CatalogService.from_database(db, config)
        if args.dedupe:
            service.linker.dedupe_links = True
        links = service.link_taxonomy(args.book_id, args.genres, args.tags)

        logger.info(f"Created {len(links)} links for book {args.book_id}")
        show_book(args, config, db)


def rate_book(args, config: Config):
    """Submit a user's rating."""
    if not 0 <= args.rate <= config.MAX_RATING_VALUE:
        logger.error(f"Rating must be between 0 and {config.MAX_RATING_VALUE}, got {args.rate}")
        sys.exit(2)

    with setup_database(config) as db:
        service = CatalogService.from_database(db, config)
        book = service.rate_book(args.book_id, args.username, args.rate)
        print(f"{book.title}: {book.rating_str}")


def list_comments(args, config: Config):
    """Show comments with the viewer's edit rights."""
    with setup_database(config) as db:
        service = CatalogService.from_database(db, config)
        comments = service.list_comments(args.book_id, args.viewer)
        display_comments(comments, args.format)


def show_book(args, config: Config, db: Database = None):
    """Show a book with its rating, genres and tags."""
    if db is None:
        with setup_database(config) as db:
            return show_book(args, config, db)

    service = CatalogService.from_database(db, config)
    details = service.book_details(args.book_id)
    book = details.book

    if getattr(args, "format", "table") == "json":
        print(json.dumps({
            "id": book.id,
            "title": book.title,
            "author": book.author,
            "isbn": book.isbn,
            "publication_date": book.publication_date,
            "rating": str(book.rating),
            "rates_count": book.rates_count,
            "genres": details.genres,
            "tags": details.tags,
        }, indent=2))
        return

    rows = [
        ["Title", book.title],
        ["Author", book.author],
        ["ISBN", book.isbn or "N/A"],
        ["Published", book.publication_date or "Unknown"],
        ["Rating", book.rating_str],
        ["Genres", ", ".join(details.genres) or "None"],
        ["Tags", ", ".join(details.tags) or "None"],
    ]
    print("\n" + tabulate(rows, tablefmt="grid"))


def shelve_book(args, config: Config):
    """Put a book on a user's shelf."""
    with setup_database(config) as db:
        service = CatalogService.from_database(db, config)
        service.shelve_book(args.book_id, args.username, BookState(args.shelf))
    print(f"✅ {args.book_id} is on {args.username}'s {args.shelf} shelf")


def unshelve_book(args, config: Config):
    """Take a book off a user's shelf."""
    with setup_database(config) as db:
        service = CatalogService.from_database(db, config)
        service.remove_from_shelf(args.book_id, args.username)
    print(f"✅ {args.book_id} removed from {args.username}'s shelf")


def list_shelf(args, config: Config):
    """List the books on one of a user's shelves."""
    with setup_database(config) as db:
        service = CatalogService.from_database(db, config)
        books = service.books_on_shelf(args.username, BookState(args.shelf))
    display_books(books, args.format)


def browse_entity(args, config: Config):
    """List the books linked to a genre or tag."""
    with setup_database(config) as db:
        service = CatalogService.from_database(db, config)
        books = service.books_for_entity(EntityKind(args.kind), args.label)
    display_books(books, args.format)


def display_books(books, format_type: str):
    """Display books in specified format."""
    if not books:
        print("No books found")
        return

    if format_type == "table":
        headers = ["ID", "Title", "Author", "Rating"]
        rows = [
            [
                book.id,
                book.title[:50] + "..." if len(book.title) > 50 else book.title,
                book.author,
                book.rating_str
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        books_dict = [
            {
                "id": book.id,
                "title": book.title,
                "author": book.author,
                "rating": str(book.rating),
                "rates_count": book.rates_count
            }
            for book in books
        ]
        print(json.dumps(books_dict, indent=2))


def display_comments(comments, format_type: str):
    """Display comments in specified format."""
    if format_type == "table":
        headers = ["Date", "Author", "Comment", "Can edit"]
        rows = [
            [
                comment.date.strftime("%Y-%m-%d %H:%M") if comment.date else "",
                comment.author,
                comment.content[:60] + "..." if len(comment.content) > 60 else comment.content,
                "yes" if comment.can_edit else "no"
            ]
            for comment in comments
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        comments_dict = [
            {
                "id": comment.comment_id,
                "book_id": comment.book_id,
                "author": comment.author,
                "author_pic_url": comment.author_pic_url,
                "content": comment.content,
                "date": comment.date.isoformat() if comment.date else None,
                "can_edit": comment.can_edit
            }
            for comment in comments
        ]
        print(json.dumps(comments_dict, indent=2))


def show_stats(args, config: Config):
    """Show database statistics."""
    with setup_database(config) as db:
        stats = db.get_stats()

    print("\n" + "=" * 50)
    print("CATALOG STATISTICS")
    print("=" * 50)
    print(f"Books: {stats['total_books']}")
    print(f"Genres: {stats['genres']} ({stats['genre_links']} links)")
    print(f"Tags: {stats['tags']} ({stats['tag_links']} links)")
    print(f"Ratings: {stats['rated']} of {stats['votes']} shelf entries")
    print(f"Comments: {stats['comments']}")
    print("=" * 50 + "\n")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Catalog - taxonomy, ratings, shelves and comments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create tables
  %(prog)s init-db

  # Link genres and tags to a book
  %(prog)s link BOOK_ID --genres "Fantasy, Adventure" --tags "magic; dragons"

  # Rate a book
  %(prog)s rate BOOK_ID alice 4

  # Shelve a book, then list the shelf
  %(prog)s shelve BOOK_ID alice want_to_read
  %(prog)s shelf alice want_to_read

  # Books in a genre
  %(prog)s browse genre Fantasy

  # Comments as seen by a user
  %(prog)s comments BOOK_ID --viewer bob --format json
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database schema")

    link_parser = subparsers.add_parser("link", help="Link genres and tags to a book")
    link_parser.add_argument("book_id", help="Book ID")
    link_parser.add_argument("--genres", help="Delimited genre names")
    link_parser.add_argument("--tags", help="Delimited tag values")
    link_parser.add_argument("--dedupe", action="store_true", help="Skip labels repeated in one submission")

    rate_parser = subparsers.add_parser("rate", help="Rate a book")
    rate_parser.add_argument("book_id", help="Book ID")
    rate_parser.add_argument("username", help="Voting user")
    rate_parser.add_argument("rate", type=int, help="Rating value")

    comments_parser = subparsers.add_parser("comments", help="List comments on a book")
    comments_parser.add_argument("book_id", help="Book ID")
    comments_parser.add_argument("--viewer", help="Username to evaluate edit rights for")
    comments_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    show_parser = subparsers.add_parser("show", help="Show a book")
    show_parser.add_argument("book_id", help="Book ID")
    show_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    shelves = [state.value for state in BookState if state != BookState.DEFAULT]

    shelve_parser = subparsers.add_parser("shelve", help="Put a book on a shelf or move it")
    shelve_parser.add_argument("book_id", help="Book ID")
    shelve_parser.add_argument("username", help="Shelf owner")
    shelve_parser.add_argument("shelf", choices=shelves, help="Target shelf")

    unshelve_parser = subparsers.add_parser("unshelve", help="Take a book off its shelf")
    unshelve_parser.add_argument("book_id", help="Book ID")
    unshelve_parser.add_argument("username", help="Shelf owner")

    shelf_parser = subparsers.add_parser("shelf", help="List the books on a shelf")
    shelf_parser.add_argument("username", help="Shelf owner")
    shelf_parser.add_argument("shelf", choices=shelves, help="Shelf to list")
    shelf_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    browse_parser = subparsers.add_parser("browse", help="List the books in a genre or with a tag")
    browse_parser.add_argument("kind", choices=[kind.value for kind in EntityKind], help="Genre or tag")
    browse_parser.add_argument("label", help="Genre name or tag value")
    browse_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    subparsers.add_parser("stats", help="Show catalog statistics")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()
    setup_logging(config)

    commands = {
        "init-db": init_db,
        "link": link_taxonomy,
        "rate": rate_book,
        "comments": list_comments,
        "show": show_book,
        "shelve": shelve_book,
        "unshelve": unshelve_book,
        "shelf": list_shelf,
        "browse": browse_entity,
        "stats": show_stats,
    }

    try:
        commands[args.command](args, config)

    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except CatalogError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
