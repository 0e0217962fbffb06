"""Link books to genres and tags from submitted text."""
import logging
from typing import Iterable, List, Optional

from bookcatalog.config import Config
from bookcatalog.models import BookEntityLink, EntityKind
from bookcatalog.parse import clean_labels, deduplicate_labels, split_labels
from bookcatalog.resolver import CanonicalEntityResolver
from bookcatalog.stores import EntityStore

logger = logging.getLogger(__name__)


class TaxonomyLinker:
    """Resolve labels and create book links, one label at a time, in order."""

    def __init__(
        self,
        store: EntityStore,
        resolver: Optional[CanonicalEntityResolver] = None,
        dedupe_links: Optional[bool] = None
    ):
        """
        Initialize linker.

        Args:
            store: Entity store receiving the links
            resolver: Resolver to use (default: one over ``store``)
            dedupe_links: Skip labels repeated within one call
                (default: ``Config.DEDUPE_LINKS``)
        """
        self.store = store
        self.resolver = resolver or CanonicalEntityResolver(store)
        self.dedupe_links = Config.DEDUPE_LINKS if dedupe_links is None else dedupe_links

    @staticmethod
    def split_labels(raw_text: Optional[str]) -> List[str]:
        return split_labels(raw_text)

    def link_genres(self, raw_labels: Iterable[str], book_id: str) -> List[BookEntityLink]:
        return self._link(EntityKind.GENRE, raw_labels, book_id)

    def link_tags(self, raw_labels: Iterable[str], book_id: str) -> List[BookEntityLink]:
        return self._link(EntityKind.TAG, raw_labels, book_id)

    def link_taxonomy(
        self,
        book_id: str,
        genres_text: Optional[str],
        tags_text: Optional[str]
    ) -> List[BookEntityLink]:
        """
        Split genre and tag text and link both to a book.

        Args:
            book_id: Book to link
            genres_text: Delimited genre names, may be None
            tags_text: Delimited tag values, may be None

        Returns:
            Genre links followed by tag links
        """
        links = self.link_genres(split_labels(genres_text), book_id)
        links.extend(self.link_tags(split_labels(tags_text), book_id))
        return links

    def _link(self, kind: EntityKind, raw_labels: Iterable[str], book_id: str) -> List[BookEntityLink]:
        """
        Resolve each label and link it to the book.

        Not atomic: if label N fails, labels before it stay linked and
        the error propagates.
        """
        raw_labels = list(raw_labels)
        labels = clean_labels(raw_labels)
        if len(labels) != len(raw_labels):
            logger.debug(f"Skipped {len(raw_labels) - len(labels)} empty {kind.value} label(s)")

        if self.dedupe_links:
            labels = deduplicate_labels(labels)

        links = []
        for label in labels:
            entity = self.resolver.resolve(kind, label)
            self.store.create_link(book_id, entity.id, kind)
            links.append(BookEntityLink(book_id=book_id, entity_id=entity.id, kind=kind))

        logger.info(f"Linked {len(links)} {kind.value}(s) to book {book_id}")
        return links
