"""Domain models for secret management."""
import base64
import binascii
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional

from .errors import ValidationError

DEFAULT_ENVIRONMENT = "dev"
DEFAULT_PATH = "/"


class SecretType(str, Enum):
    """Visibility partition of a secret record."""
    SHARED = "shared"
    PERSONAL = "personal"


@dataclass(frozen=True)
class SecretScope:
    """Identifies a visibility partition.

    ``type`` is None on lookups that should apply the personal-over-shared
    rule. Stored records always carry a concrete type.
    """
    environment: str = DEFAULT_ENVIRONMENT
    path: str = DEFAULT_PATH
    type: Optional[SecretType] = None

    def with_type(self, type: Optional[SecretType]) -> "SecretScope":
        return replace(self, type=type)


@dataclass(frozen=True)
class SecretRecord:
    """A stored secret with its raw (uninterpolated) value."""
    name: str
    raw_value: str
    scope: SecretScope

    @property
    def type(self) -> Optional[SecretType]:
        return self.scope.type


@dataclass
class ResolvedSecret:
    """Output of read and write operations."""
    name: str
    value: str
    type: SecretType
    environment: str = DEFAULT_ENVIRONMENT
    path: str = DEFAULT_PATH

    @classmethod
    def from_record(cls, record: SecretRecord, value: Optional[str] = None) -> "ResolvedSecret":
        return cls(
            name=record.name,
            value=record.raw_value if value is None else value,
            type=record.scope.type,
            environment=record.scope.environment,
            path=record.scope.path,
        )


@dataclass
class SecretOptions:
    """Per-call options for single-secret operations."""
    type: Optional[SecretType] = None
    environment: str = DEFAULT_ENVIRONMENT
    path: str = DEFAULT_PATH

    def scope(self) -> SecretScope:
        return SecretScope(environment=self.environment, path=self.path, type=self.type)


@dataclass
class ListOptions:
    """Options for listing every secret in an environment/path."""
    environment: str = DEFAULT_ENVIRONMENT
    path: str = DEFAULT_PATH
    mirror_to_host_environment: bool = False
    include_resolved_references: bool = False
    # Collapse shared/personal pairs to the personal-preferred record
    effective_only: bool = False

    def scope(self) -> SecretScope:
        return SecretScope(environment=self.environment, path=self.path)


@dataclass(frozen=True)
class CipherBundle:
    """Result of authenticated encryption."""
    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes = field(repr=False)

    def to_dict(self) -> Dict[str, str]:
        """Base64 text form, keyed the way the CLI prints it."""
        return {
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "iv": base64.b64encode(self.nonce).decode("ascii"),
            "tag": base64.b64encode(self.auth_tag).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "CipherBundle":
        try:
            return cls(
                ciphertext=base64.b64decode(data["ciphertext"], validate=True),
                nonce=base64.b64decode(data["iv"], validate=True),
                auth_tag=base64.b64decode(data["tag"], validate=True),
            )
        except KeyError as e:
            raise ValidationError(f"Cipher bundle is missing field {e}")
        except (binascii.Error, ValueError) as e:
            raise ValidationError(f"Cipher bundle is not valid base64: {e}")
