"""Exception taxonomy for secret operations."""
from typing import Optional, Sequence


class SecretKitError(Exception):
    """Base class for all agent-secretkit errors."""
    pass


class NotFound(SecretKitError):
    """Secret name absent in the resolvable scope."""

    def __init__(self, name: str, environment: str, path: str, type: Optional[str] = None):
        self.name = name
        self.environment = environment
        self.path = path
        self.type = type
        where = f"environment '{environment}', path '{path}'"
        if type:
            where = f"{where}, type '{type}'"
        super().__init__(f"Secret '{name}' not found in {where}")


class CircularReference(SecretKitError):
    """Interpolation graph contains a cycle."""

    def __init__(self, chain: Sequence[str]):
        self.chain = tuple(chain)
        super().__init__(f"Circular reference detected: {' -> '.join(self.chain)}")


class MaxDepthExceeded(SecretKitError):
    """Interpolation chain is nested deeper than allowed."""

    def __init__(self, chain: Sequence[str], max_depth: int):
        self.chain = tuple(chain)
        self.max_depth = max_depth
        super().__init__(
            f"Interpolation depth exceeds {max_depth}: {' -> '.join(self.chain)}"
        )


class AuthenticationFailed(SecretKitError):
    """Authenticated decryption could not verify the tag."""
    pass


class ValidationError(SecretKitError):
    """Malformed input (bad key length, empty secret name, ...)."""
    pass


class TransportFailure(SecretKitError):
    """Backend store failure, raised only by store adapters."""
    pass


class ConfigError(SecretKitError):
    """Configuration error exception."""
    pass
