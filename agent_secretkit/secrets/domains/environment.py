"""Environment writers used to mirror resolved secrets into an env table."""
import logging
import os
from abc import ABC, abstractmethod
from typing import MutableMapping, Optional

logger = logging.getLogger(__name__)


class EnvironmentWriter(ABC):
    """Capability to publish a name/value pair into an environment table."""

    @abstractmethod
    def write(self, name: str, value: str) -> None:
        ...


class ProcessEnvironmentWriter(EnvironmentWriter):
    """Writes into the current process environment (os.environ)."""

    def write(self, name, value):
        os.environ[name] = value
        logger.debug(f"Exported {name} to process environment")


class MappingEnvironmentWriter(EnvironmentWriter):
    """Writes into a plain mapping. Useful for tests and subprocess envs."""

    def __init__(self, target: Optional[MutableMapping[str, str]] = None):
        self.target = {} if target is None else target

    def write(self, name, value):
        self.target[name] = value
