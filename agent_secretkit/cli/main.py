"""CLI entrypoint for agent-secretkit."""
import sys
import json
import shlex
import argparse
import logging
import re
from pathlib import Path

from .validators import validate_secret_name, validate_secret_path, validate_secret_value

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)

SHELL_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _build_service(environment_writer=None):
    from agent_secretkit.secrets.domains.config_loader import load_config_or_defaults
    from agent_secretkit.secrets.workflows.secret_operations import build_service

    return build_service(load_config_or_defaults(), environment_writer=environment_writer)


def _scope_defaults():
    """Default environment/path: preference first, then config."""
    from agent_secretkit.secrets.domains.config_loader import load_config_or_defaults
    from agent_secretkit.secrets.domains.preferences import get_preference

    defaults = load_config_or_defaults()['defaults']
    return (
        get_preference("default_environment", defaults['environment']),
        get_preference("default_path", defaults['path']),
    )


def _secret_options(args):
    from agent_secretkit.secrets.domains.models import SecretOptions, SecretType

    environment, path = _scope_defaults()
    path = args.path or path
    validate_secret_path(path)
    return SecretOptions(
        type=SecretType(args.type) if args.type else None,
        environment=args.env or environment,
        path=path,
    )


def _print_secret(secret, quiet=False):
    if quiet:
        # Quiet mode: output only value, no formatting
        print(secret.value)
    else:
        print(f"Secret '{secret.name}' ({secret.type.value}): {secret.value}")


def cmd_version(args):
    """Show version information."""
    print(f"agent-secretkit {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from agent_secretkit.secrets.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path and scope defaults."""
    from agent_secretkit.secrets.domains.config_loader import default_config_path
    from agent_secretkit.secrets.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, built-in defaults apply)")

    environment, path = _scope_defaults()
    print(f"Default environment: {environment}")
    print(f"Default path: {path}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from agent_secretkit.secrets.domains.config_loader import default_config_path
    from agent_secretkit.secrets.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_config_set_default(args):
    """Store default environment and/or path preferences."""
    from agent_secretkit.secrets.domains.preferences import set_preference

    if not args.env and not args.path:
        print("Error: Provide --env and/or --path", file=sys.stderr)
        sys.exit(2)
    if args.env:
        set_preference("default_environment", args.env)
        print(f"Default environment set to: {args.env}")
    if args.path:
        validate_secret_path(args.path)
        set_preference("default_path", args.path)
        print(f"Default path set to: {args.path}")


def cmd_secrets_get(args):
    """Get a secret with references resolved."""
    validate_secret_name(args.secret_name)
    secret = _build_service().get(args.secret_name, _secret_options(args))
    _print_secret(secret, quiet=args.quiet)


def cmd_secrets_create(args):
    """Create or overwrite a secret."""
    validate_secret_name(args.secret_name)
    validate_secret_value(args.value)
    secret = _build_service().create(args.secret_name, args.value, _secret_options(args))
    print(f"Created {secret.type.value} secret '{secret.name}'")


def cmd_secrets_update(args):
    """Update the secret a get would select."""
    validate_secret_name(args.secret_name)
    validate_secret_value(args.value)
    secret = _build_service().update(args.secret_name, args.value, _secret_options(args))
    print(f"Updated {secret.type.value} secret '{secret.name}'")


def cmd_secrets_delete(args):
    """Delete the secret a get would select."""
    validate_secret_name(args.secret_name)
    secret = _build_service().delete(args.secret_name, _secret_options(args))
    print(f"Deleted {secret.type.value} secret '{secret.name}'")


def cmd_secrets_list(args):
    """List secrets in an environment/path."""
    from agent_secretkit.secrets.domains.environment import MappingEnvironmentWriter
    from agent_secretkit.secrets.domains.models import ListOptions

    environment, path = _scope_defaults()
    path = args.path or path
    validate_secret_path(path)

    writer = MappingEnvironmentWriter()
    options = ListOptions(
        environment=args.env or environment,
        path=path,
        mirror_to_host_environment=args.export,
        include_resolved_references=args.resolve,
        effective_only=args.effective,
    )
    secrets = _build_service(environment_writer=writer).list_all(options)

    if args.export:
        # One line per name; the mirrored table already holds the winning value
        for name, value in writer.target.items():
            if not SHELL_NAME_PATTERN.match(name):
                logger.warning(f"Skipping '{name}': not a valid shell variable name")
                continue
            print(f"export {name}={shlex.quote(value)}")
        return

    if not secrets:
        print(f"No secrets in {options.environment}:{options.path}", file=sys.stderr)
    for secret in secrets:
        print(f"{secret.name}={secret.value}  # {secret.type.value}")


def cmd_crypto_keygen(args):
    """Print a new base64-encoded 256-bit key."""
    from agent_secretkit.secrets.domains.encryption import encode_key, generate_key

    print(encode_key(generate_key()))


def cmd_crypto_encrypt(args):
    """Encrypt plaintext and print the cipher bundle as JSON."""
    from agent_secretkit.secrets.domains.encryption import decode_key, encrypt

    bundle = encrypt(args.plaintext, decode_key(args.key))
    print(json.dumps(bundle.to_dict()))


def cmd_crypto_decrypt(args):
    """Verify and decrypt a cipher bundle."""
    from agent_secretkit.secrets.domains.encryption import decode_key, decrypt_bundle
    from agent_secretkit.secrets.domains.models import CipherBundle

    bundle = CipherBundle.from_dict({"ciphertext": args.ciphertext, "iv": args.iv, "tag": args.tag})
    print(decrypt_bundle(bundle, decode_key(args.key)))


def _add_scope_arguments(parser, with_type=True):
    if with_type:
        parser.add_argument(
            "--type",
            choices=["shared", "personal"],
            help="Secret type (create defaults to shared; reads prefer personal over shared)"
        )
    parser.add_argument("--env", help="Environment (default: preference, then config, then 'dev')")
    parser.add_argument("--path", help="Secret path (default: preference, then config, then '/')")


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (secret not found, circular reference, backend failure, etc.)
        2 - Usage errors (invalid arguments, invalid secret name, malformed key, etc.)
    """
    parser = argparse.ArgumentParser(
        prog="secretkit",
        description="agent-secretkit CLI - shared/personal secrets with ${NAME} references",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (secret not found, circular reference, backend failure, etc.)
  2 - Usage error (invalid arguments, invalid secret name format, etc.)

Environment variables:
  GCP_PROJECT - GCP project ID for the gcp backend (overrides config file)

Configuration:
  Default location: ~/.config/agent-secretkit/config.yml
  Custom path: Set with 'secretkit config set-path <path>'
  View current: Run 'secretkit config show'
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")

    # config command
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser("set-path", help="Set config file path")
    config_set_path_parser.add_argument("path", help="Path to config file")
    config_subparsers.add_parser("show", help="Show current config path and defaults")
    config_subparsers.add_parser("clear", help="Clear config path preference")
    config_set_default_parser = config_subparsers.add_parser(
        "set-default",
        help="Set default environment/path"
    )
    _add_scope_arguments(config_set_default_parser, with_type=False)

    # secrets command
    secrets_parser = subparsers.add_parser("secrets", help="Secret management operations")
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")

    get_parser = secrets_subparsers.add_parser(
        "get",
        help="Get a secret value",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Fetch a secret and resolve its ${NAME} references.

A personal secret shadows the shared secret of the same name unless
--type shared is given.
        """
    )
    get_parser.add_argument("secret_name", help="Name of the secret")
    _add_scope_arguments(get_parser)
    get_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Output only the secret value (useful for scripts)"
    )

    create_parser = secrets_subparsers.add_parser("create", help="Create or overwrite a secret")
    create_parser.add_argument("secret_name", help="Name of the secret")
    create_parser.add_argument("value", help="Raw value (may contain ${NAME} references)")
    _add_scope_arguments(create_parser)

    update_parser = secrets_subparsers.add_parser("update", help="Update an existing secret")
    update_parser.add_argument("secret_name", help="Name of the secret")
    update_parser.add_argument("value", help="New raw value")
    _add_scope_arguments(update_parser)

    delete_parser = secrets_subparsers.add_parser("delete", help="Delete a secret")
    delete_parser.add_argument("secret_name", help="Name of the secret")
    _add_scope_arguments(delete_parser)

    list_parser = secrets_subparsers.add_parser("list", help="List secrets in an environment/path")
    _add_scope_arguments(list_parser, with_type=False)
    list_parser.add_argument("--resolve", action="store_true", help="Resolve ${NAME} references")
    list_parser.add_argument(
        "--effective",
        action="store_true",
        help="Show one entry per name (personal preferred) instead of both"
    )
    list_parser.add_argument(
        "--export",
        action="store_true",
        help="Print shell 'export NAME=value' lines (personal values win)"
    )

    # crypto command
    crypto_parser = subparsers.add_parser("crypto", help="Symmetric AES-256-GCM helpers")
    crypto_subparsers = crypto_parser.add_subparsers(dest="crypto_command")

    crypto_subparsers.add_parser("keygen", help="Generate a base64 256-bit key")

    encrypt_parser = crypto_subparsers.add_parser("encrypt", help="Encrypt plaintext")
    encrypt_parser.add_argument("plaintext", help="Text to encrypt")
    encrypt_parser.add_argument("--key", required=True, help="Base64 key from 'crypto keygen'")

    decrypt_parser = crypto_subparsers.add_parser("decrypt", help="Verify and decrypt")
    decrypt_parser.add_argument("--key", required=True, help="Base64 key")
    decrypt_parser.add_argument("--ciphertext", required=True, help="Base64 ciphertext")
    decrypt_parser.add_argument("--iv", required=True, help="Base64 12-byte nonce")
    decrypt_parser.add_argument("--tag", required=True, help="Base64 16-byte authentication tag")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    handlers = {
        ("config", "set-path"): cmd_config_set_path,
        ("config", "show"): cmd_config_show,
        ("config", "clear"): cmd_config_clear,
        ("config", "set-default"): cmd_config_set_default,
        ("secrets", "get"): cmd_secrets_get,
        ("secrets", "create"): cmd_secrets_create,
        ("secrets", "update"): cmd_secrets_update,
        ("secrets", "delete"): cmd_secrets_delete,
        ("secrets", "list"): cmd_secrets_list,
        ("crypto", "keygen"): cmd_crypto_keygen,
        ("crypto", "encrypt"): cmd_crypto_encrypt,
        ("crypto", "decrypt"): cmd_crypto_decrypt,
    }
    group_parsers = {"config": config_parser, "secrets": secrets_parser, "crypto": crypto_parser}

    from agent_secretkit.secrets.domains.errors import ValidationError

    try:
        if args.command == "version":
            cmd_version(args)
            return

        subcommand = getattr(args, f"{args.command}_command", None)
        handler = handlers.get((args.command, subcommand))
        if handler is None:
            group_parsers[args.command].print_help()
            sys.exit(2)
        handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
