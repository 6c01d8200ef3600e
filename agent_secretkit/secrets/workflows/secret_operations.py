"""Secret Service: create/get/update/delete/list over the overlay and interpolation engines."""
import logging
import re
from typing import Any, Dict, List, Optional

from ..domains.environment import EnvironmentWriter, ProcessEnvironmentWriter
from ..domains.errors import NotFound, ValidationError
from ..domains.gcp_client import GCPSecretStore, apply_credentials, resolve_project_id
from ..domains.interpolation import DEFAULT_MAX_DEPTH, InterpolationEngine
from ..domains.models import (
    ListOptions,
    ResolvedSecret,
    SecretOptions,
    SecretRecord,
    SecretType,
)
from ..domains.overlay import OverlayResolver
from ..domains.store import FileSecretStore, InMemorySecretStore, SecretStore

logger = logging.getLogger(__name__)

SECRET_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def validate_secret_name(name: str) -> None:
    """Raise ValidationError unless name matches [a-zA-Z0-9_-]+."""
    if not name:
        raise ValidationError("Secret name cannot be empty")
    if not isinstance(name, str) or not SECRET_NAME_PATTERN.match(name):
        raise ValidationError(
            f"Invalid secret name '{name}': allowed characters are letters, numbers, "
            f"underscores (_) and hyphens (-)"
        )


class SecretService:
    """Orchestrates store writes and overlay/interpolation reads.

    Store failures (TransportFailure and anything else the store raises)
    propagate unchanged; only resolution problems become NotFound,
    CircularReference or MaxDepthExceeded.
    """

    def __init__(
        self,
        store: SecretStore,
        max_depth: int = DEFAULT_MAX_DEPTH,
        environment_writer: Optional[EnvironmentWriter] = None,
    ):
        self.store = store
        self.max_depth = max_depth
        self.environment_writer = environment_writer or ProcessEnvironmentWriter()
        self.resolver = OverlayResolver(store)

    def _engine(self, resolver: OverlayResolver) -> InterpolationEngine:
        return InterpolationEngine(resolver, max_depth=self.max_depth)

    def create(self, name: str, value: str, options: Optional[SecretOptions] = None,
               timeout: Optional[float] = None) -> ResolvedSecret:
        """Upsert a record (shared unless options.type says otherwise), returning its literal value."""
        options = options or SecretOptions()
        validate_secret_name(name)
        if not isinstance(value, str):
            raise ValidationError(f"Secret value for '{name}' must be a string")

        scope = options.scope().with_type(options.type or SecretType.SHARED)
        record = self.store.put(SecretRecord(name, value, scope), timeout=timeout)
        logger.info(f"Created {scope.type.value} secret '{name}' in {scope.environment}:{scope.path}")
        return ResolvedSecret.from_record(record)

    def get(self, name: str, options: Optional[SecretOptions] = None,
            timeout: Optional[float] = None) -> ResolvedSecret:
        """Visible record for name with every reference substituted."""
        options = options or SecretOptions()
        validate_secret_name(name)

        scope = options.scope()
        record = self.resolver.resolve_single(name, scope, timeout=timeout)
        value = self._engine(self.resolver).resolve_value(record, scope, timeout=timeout)
        return ResolvedSecret.from_record(record, value)

    def update(self, name: str, value: str, options: Optional[SecretOptions] = None,
               timeout: Optional[float] = None) -> ResolvedSecret:
        """
        Replace the value of the record get() would select.

        The record keeps its own type: updating with no type while a
        personal override exists changes the personal value. An explicit
        PERSONAL type never falls back to the shared record.

        Raises:
            NotFound: If no record is selected
        """
        options = options or SecretOptions()
        validate_secret_name(name)
        if not isinstance(value, str):
            raise ValidationError(f"Secret value for '{name}' must be a string")

        current = self.resolver.resolve_single(name, options.scope(), timeout=timeout,
                                               fallback=options.type is None)
        record = self.store.put(SecretRecord(name, value, current.scope), timeout=timeout)
        logger.info(f"Updated {record.scope.type.value} secret '{name}' in {record.scope.environment}:{record.scope.path}")
        return ResolvedSecret.from_record(record)

    def delete(self, name: str, options: Optional[SecretOptions] = None,
               timeout: Optional[float] = None) -> ResolvedSecret:
        """
        Remove the record get() would select, returning its resolved value.

        References are resolved before anything is removed, so a record whose
        references are broken is left in place and the error propagates.
        """
        options = options or SecretOptions()
        validate_secret_name(name)

        scope = options.scope()
        current = self.resolver.resolve_single(name, scope, timeout=timeout,
                                               fallback=options.type is None)
        value = self._engine(self.resolver).resolve_value(current, scope, timeout=timeout)
        removed = self.store.delete(name, current.scope, timeout=timeout)
        if removed is None:
            # Deleted concurrently between lookup and delete
            raise NotFound(name, current.scope.environment, current.scope.path, current.scope.type.value)
        logger.info(f"Deleted {removed.scope.type.value} secret '{name}' from {removed.scope.environment}:{removed.scope.path}")
        return ResolvedSecret.from_record(removed, value)

    def list_all(self, options: Optional[ListOptions] = None,
                 timeout: Optional[float] = None) -> List[ResolvedSecret]:
        """
        List every secret in environment/path.

        Both shared and personal entries are returned unless
        options.effective_only is set. With include_resolved_references each
        record is resolved independently against one snapshot; the first
        resolution error aborts the whole listing.
        """
        options = options or ListOptions()
        scope = options.scope()

        snapshot = self.resolver.pinned(scope, timeout=timeout)
        records = snapshot.resolve_all(scope)
        if options.effective_only:
            records = OverlayResolver.effective(records)

        if options.include_resolved_references:
            engine = self._engine(snapshot)
            secrets = [ResolvedSecret.from_record(r, engine.resolve_value(r, scope)) for r in records]
        else:
            secrets = [ResolvedSecret.from_record(r) for r in records]

        if options.mirror_to_host_environment:
            # Personal entries written last so they win over shared ones
            for secret in sorted(secrets, key=lambda s: s.type is SecretType.PERSONAL):
                self.environment_writer.write(secret.name, secret.value)
            logger.info(f"Mirrored {len(secrets)} secrets into the environment")

        return secrets


def build_store(config: Dict[str, Any]) -> SecretStore:
    """Instantiate the store named by config['backend']['type']."""
    backend = config['backend']
    if backend['type'] == 'memory':
        return InMemorySecretStore()
    if backend['type'] == 'file':
        return FileSecretStore(backend['file_path'])

    apply_credentials(config)
    return GCPSecretStore(resolve_project_id(config))


def build_service(config: Dict[str, Any], environment_writer: Optional[EnvironmentWriter] = None) -> SecretService:
    """Build a SecretService from a validated config dict."""
    return SecretService(
        build_store(config),
        max_depth=config['interpolation']['max_depth'],
        environment_writer=environment_writer,
    )
