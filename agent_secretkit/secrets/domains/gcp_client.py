"""GCP Secret Manager backed SecretStore."""
import hashlib
import logging
import os
import re
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from .errors import ConfigError, TransportFailure
from .models import SecretRecord, SecretScope, SecretType
from .store import SecretStore

logger = logging.getLogger(__name__)

SCOPE_LABEL = "secretkit_scope"
TYPE_LABEL = "secretkit_type"
ENVIRONMENT_ANNOTATION = "secretkit-environment"
PATH_ANNOTATION = "secretkit-path"
NAME_ANNOTATION = "secretkit-name"


def resolve_project_id(config: Optional[Dict[str, Any]] = None) -> str:
    """
    Get GCP project ID from environment variable or config.

    Priority order:
    1. GCP_PROJECT environment variable (allows override)
    2. gcp.project_id in the config dict

    Raises:
        ConfigError: If project_id is not found in either place
    """
    gcp_project_env = os.getenv("GCP_PROJECT")
    if gcp_project_env:
        logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
        return gcp_project_env

    if config and config.get('gcp', {}).get('project_id'):
        project_id = config['gcp']['project_id']
        logger.debug(f"Using project_id from config: {project_id}")
        return project_id

    raise ConfigError(
        "Project ID not found. Please set GCP_PROJECT environment variable "
        "or configure gcp.project_id in config file"
    )


def apply_credentials(config: Optional[Dict[str, Any]]) -> None:
    """Point GOOGLE_APPLICATION_CREDENTIALS at the configured service account."""
    auth = (config or {}).get('authentication') or {}
    if 'service_account_path' in auth:
        os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = auth['service_account_path']
        logger.info(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {auth['service_account_path']}")


def scope_digest(environment: str, path: str) -> str:
    """Stable label value identifying an environment/path pair."""
    return hashlib.sha256(f"{environment}\0{path}".encode("UTF-8")).hexdigest()[:16]


def secret_id_for(name: str, scope: SecretScope) -> str:
    """
    Map a scoped secret to a GCP secret ID.

    GCP IDs allow only [a-zA-Z0-9_-], so the environment is slugged and the
    exact environment/path are carried by a digest and by annotations.
    """
    env_slug = re.sub(r"[^a-zA-Z0-9_-]", "_", scope.environment)[:40]
    return f"{env_slug}--{scope_digest(scope.environment, scope.path)}--{SecretType(scope.type).value}--{name}"


class GCPSecretStore(SecretStore):
    """SecretStore over Google Cloud Secret Manager.

    Each (environment, path, type, name) is one GCP secret; its latest
    version holds the raw value. Backend errors surface as TransportFailure.
    """

    def __init__(self, project_id: str, client: Optional[secretmanager.SecretManagerServiceClient] = None):
        self.project_id = project_id
        self._client = client

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}"

    def _secret_path(self, name: str, scope: SecretScope) -> str:
        return f"{self.parent}/secrets/{secret_id_for(name, scope)}"

    def _access(self, secret_path: str, timeout: Optional[float]) -> Optional[str]:
        try:
            response = self.client.access_secret_version(
                request={"name": f"{secret_path}/versions/latest"}, timeout=timeout
            )
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.GoogleAPIError as e:
            raise TransportFailure(f"GCP fetch failed for {secret_path}: {e}") from e
        return response.payload.data.decode("UTF-8")

    def get(self, name, scope, timeout=None):
        value = self._access(self._secret_path(name, scope), timeout)
        if value is None:
            return None
        return SecretRecord(name, value, scope)

    def list(self, environment, path, timeout=None) -> List[SecretRecord]:
        label_filter = f"labels.{SCOPE_LABEL}={scope_digest(environment, path)}"
        try:
            secrets = list(self.client.list_secrets(
                request={"parent": self.parent, "filter": label_filter}, timeout=timeout
            ))
        except gcp_exceptions.GoogleAPIError as e:
            raise TransportFailure(f"GCP list failed for {environment}:{path}: {e}") from e

        records = []
        for secret in secrets:
            annotations = dict(secret.annotations)
            if annotations.get(ENVIRONMENT_ANNOTATION) != environment or annotations.get(PATH_ANNOTATION) != path:
                continue
            value = self._access(secret.name, timeout)
            if value is None:
                # Secret without an enabled version
                continue
            scope = SecretScope(environment, path, SecretType(secret.labels[TYPE_LABEL]))
            records.append(SecretRecord(annotations[NAME_ANNOTATION], value, scope))
        return records

    def put(self, record, timeout=None):
        secret_id = secret_id_for(record.name, record.scope)
        try:
            self.client.create_secret(
                request={
                    "parent": self.parent,
                    "secret_id": secret_id,
                    "secret": {
                        "replication": {"automatic": {}},
                        "labels": {
                            SCOPE_LABEL: scope_digest(record.scope.environment, record.scope.path),
                            TYPE_LABEL: record.scope.type.value,
                        },
                        "annotations": {
                            ENVIRONMENT_ANNOTATION: record.scope.environment,
                            PATH_ANNOTATION: record.scope.path,
                            NAME_ANNOTATION: record.name,
                        },
                    },
                },
                timeout=timeout,
            )
            logger.info(f"Created GCP secret {secret_id}")
        except gcp_exceptions.AlreadyExists:
            logger.debug(f"GCP secret {secret_id} exists, adding a new version")
        except gcp_exceptions.GoogleAPIError as e:
            raise TransportFailure(f"GCP create failed for {secret_id}: {e}") from e

        try:
            self.client.add_secret_version(
                request={
                    "parent": f"{self.parent}/secrets/{secret_id}",
                    "payload": {"data": record.raw_value.encode("UTF-8")},
                },
                timeout=timeout,
            )
        except gcp_exceptions.GoogleAPIError as e:
            raise TransportFailure(f"GCP write failed for {secret_id}: {e}") from e
        return record

    def delete(self, name, scope, timeout=None):
        existing = self.get(name, scope, timeout=timeout)
        if existing is None:
            return None
        try:
            self.client.delete_secret(request={"name": self._secret_path(name, scope)}, timeout=timeout)
        except gcp_exceptions.NotFound:
            return None
        except gcp_exceptions.GoogleAPIError as e:
            raise TransportFailure(f"GCP delete failed for {name}: {e}") from e
        logger.info(f"Deleted GCP secret {secret_id_for(name, scope)}")
        return existing
