"""Recursive ${NAME} interpolation between secrets."""
import logging
import re
from typing import Optional, Sequence, Tuple

from .errors import CircularReference, MaxDepthExceeded
from .models import SecretRecord, SecretScope
from .overlay import OverlayResolver

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10

# ${IDENT}; anything else, including "${}" and "${a-b}", stays literal
TOKEN_PATTERN = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


def find_references(raw_value: str) -> Tuple[str, ...]:
    """Names referenced by raw_value, in order of appearance."""
    return tuple(match.group(1) for match in TOKEN_PATTERN.finditer(raw_value))


class InterpolationEngine:
    """Depth-first substitution of interpolation tokens.

    The walk carries the chain of names currently being resolved. A token
    naming a member of the chain is a cycle; a chain longer than max_depth
    is rejected before the next lookup.
    """

    def __init__(self, resolver: OverlayResolver, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.resolver = resolver
        self.max_depth = max_depth

    def resolve_value(
        self,
        record: SecretRecord,
        scope: SecretScope,
        visiting: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Return record.raw_value with every token recursively substituted.

        Args:
            record: Record whose value to resolve
            scope: Environment/path references are looked up in (its type
                is ignored; references follow personal-over-shared)
            visiting: Ordered chain of names already being resolved. Defaults
                to (record.name,) for a top-level call.
            timeout: Passed through to every store lookup

        Raises:
            CircularReference: A token refers back into the chain
            MaxDepthExceeded: The chain is longer than max_depth
            NotFound: A referenced secret does not exist in the scope
        """
        chain = tuple(visiting) if visiting is not None else (record.name,)
        lookup_scope = scope.with_type(None)

        def substitute(match):
            name = match.group(1)
            if name in chain:
                raise CircularReference(chain + (name,))
            if len(chain) > self.max_depth:
                raise MaxDepthExceeded(chain + (name,), self.max_depth)

            referenced = self.resolver.resolve_single(name, lookup_scope, timeout=timeout)
            return self.resolve_value(referenced, lookup_scope, chain + (name,), timeout=timeout)

        # re.sub scans once, left to right, so substituted text is never rescanned
        value, count = TOKEN_PATTERN.subn(substitute, record.raw_value)
        if count:
            logger.debug(f"Interpolated {count} reference(s) in '{record.name}' at depth {len(chain)}")
        return value
