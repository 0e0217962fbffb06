"""Resolve free-text labels to canonical genre and tag entities."""
import logging
import threading
import uuid
from typing import List

from bookcatalog.models import CanonicalEntity, EntityKind
from bookcatalog.stores import EntityStore

logger = logging.getLogger(__name__)

# Fixed pool of creation locks shared by all labels
LOCK_STRIPES = 64


class CanonicalEntityResolver:
    """
    Find or create the single genre/tag entity for a label.

    If the store offers ``create_if_absent`` the insert is delegated to it
    and the stored winner is returned, so concurrent first use of a label
    yields one entity. Otherwise lookup-then-create runs under one of
    ``LOCK_STRIPES`` locks picked by label hash, which only covers callers
    sharing this resolver instance.
    """

    def __init__(self, store: EntityStore):
        """
        Initialize resolver.

        Args:
            store: Entity store for genres and tags
        """
        self.store = store
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def resolve(self, kind: EntityKind, label: str) -> CanonicalEntity:
        """
        Return the entity for ``label``, creating it on first use.

        Args:
            kind: Genre or tag collection
            label: Trimmed, non-empty label; matched exactly

        Returns:
            Existing or newly persisted entity

        Raises:
            StoreFailure: Propagated from the store, not retried
        """
        entity = self.store.find_by_label(kind, label)
        if entity is not None:
            return entity

        create_if_absent = getattr(self.store, "create_if_absent", None)
        if create_if_absent is not None:
            candidate = self._new_entity(kind, label)
            entity = create_if_absent(candidate)
            if entity.id == candidate.id:
                logger.info(f"Created {kind.value} '{label}' ({entity.id})")
            return entity

        with self._lock_for(kind, label):
            entity = self.store.find_by_label(kind, label)
            if entity is None:
                entity = self.store.create(self._new_entity(kind, label))
                logger.info(f"Created {kind.value} '{label}' ({entity.id})")
            return entity

    def _new_entity(self, kind: EntityKind, label: str) -> CanonicalEntity:
        return CanonicalEntity(id=str(uuid.uuid4()), label=label, kind=kind)

    def _lock_for(self, kind: EntityKind, label: str) -> threading.Lock:
        return self._locks[hash((kind, label)) % LOCK_STRIPES]
