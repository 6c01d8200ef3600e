"""Shared/personal overlay resolution."""
import logging
from typing import List, Optional

from .errors import NotFound
from .models import SecretRecord, SecretScope, SecretType
from .store import InMemorySecretStore, SecretStore

logger = logging.getLogger(__name__)


class OverlayResolver:
    """Merges shared and personal records from a SecretStore.

    Precedence is explicit: a personal record shadows the shared record of
    the same (environment, path, name) on single-value lookups. Listing
    returns both.
    """

    def __init__(self, store: SecretStore):
        self.store = store

    def resolve_single(self, name: str, scope: SecretScope, timeout: Optional[float] = None,
                       fallback: bool = True) -> SecretRecord:
        """
        Look up the visible record for name.

        Args:
            name: Secret name
            scope: Environment/path to search. type=None or PERSONAL applies
                personal-over-shared precedence; SHARED selects only the
                shared record.
            timeout: Passed through to the store
            fallback: When False, an explicit PERSONAL type does not fall
                back to the shared record

        Returns:
            The selected SecretRecord

        Raises:
            NotFound: If no eligible record exists
        """
        if scope.type is SecretType.SHARED:
            order = [SecretType.SHARED]
        elif scope.type is SecretType.PERSONAL and not fallback:
            order = [SecretType.PERSONAL]
        else:
            order = [SecretType.PERSONAL, SecretType.SHARED]

        for type in order:
            record = self.store.get(name, scope.with_type(type), timeout=timeout)
            if record is not None:
                logger.debug(f"Resolved '{name}' to {type.value} record in {scope.environment}:{scope.path}")
                return record

        raise NotFound(
            name,
            scope.environment,
            scope.path,
            scope.type.value if scope.type and len(order) == 1 else None,
        )

    def resolve_all(self, scope: SecretScope, timeout: Optional[float] = None) -> List[SecretRecord]:
        """Every shared and personal record in environment/path, not deduplicated."""
        records = self.store.list(scope.environment, scope.path, timeout=timeout)
        logger.debug(f"Listed {len(records)} records in {scope.environment}:{scope.path}")
        return records

    def pinned(self, scope: SecretScope, timeout: Optional[float] = None) -> "OverlayResolver":
        """Resolver over a snapshot of one resolve_all() call."""
        return OverlayResolver(InMemorySecretStore(self.resolve_all(scope, timeout=timeout)))

    @staticmethod
    def effective(records: List[SecretRecord]) -> List[SecretRecord]:
        """Collapse a listing to one record per name, personal preferred.

        Order follows the first appearance of each name.
        """
        selected = {}
        for record in records:
            current = selected.get(record.name)
            if current is None or (
                record.type is SecretType.PERSONAL and current.type is not SecretType.PERSONAL
            ):
                selected[record.name] = record
        return list(selected.values())
