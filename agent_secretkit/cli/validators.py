"""Input validation for CLI arguments."""
import sys

from agent_secretkit.secrets.domains.errors import ValidationError
from agent_secretkit.secrets.workflows.secret_operations import validate_secret_name as _validate_name


def validate_secret_name(name: str) -> None:
    """
    Validate secret name format: [a-zA-Z0-9_-]+

    Only names made of [A-Za-z0-9_] can be referenced with ${NAME}.

    Raises:
        SystemExit with code 2 if validation fails
    """
    try:
        _validate_name(name)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ DB_PASSWORD", file=sys.stderr)
        print("  ✓ api-key-prod", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ api.key (contains dot)", file=sys.stderr)
        print("  ✗ MY SECRET (contains space)", file=sys.stderr)
        sys.exit(2)


def validate_secret_value(value: str) -> None:
    """
    Validate secret value is not empty.

    GCP Secret Manager does not allow empty secret payloads, so the CLI
    rejects them for every backend.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not value or value.strip() == "":
        print("Error: Secret value cannot be empty", file=sys.stderr)
        print("If you need a placeholder, use a special value like 'UNSET'.", file=sys.stderr)
        sys.exit(2)


def validate_secret_path(path: str) -> None:
    """
    Validate a secret path is absolute ("/", "/app/db", ...).

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not path or not path.startswith("/"):
        print(f"Error: Invalid secret path '{path}' (must start with '/')", file=sys.stderr)
        sys.exit(2)
