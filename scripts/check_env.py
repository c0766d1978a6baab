"""Operator checks for the back-office token configuration.

Subcommands:

``check``
    Load settings from an ``.env`` file and confirm ``ENCRYPTION_KEY`` and the
    Square credentials are usable.
``verify-tokens``
    Run ``check``, then decrypt every stored OAuth token with the configured
    key. A key that was rotated or mistyped shows up here instead of as a
    failed review import or Square call.
``generate-key``
    Print a fresh key for ``ENCRYPTION_KEY``.

Example::

    python -m scripts.check_env verify-tokens --env-file /srv/backoffice/.env
"""

from __future__ import annotations

import argparse
import secrets
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from backoffice.clients.token_store import SQLiteTokenStore
from backoffice.core.config import AppSettings, _load_env_file
from backoffice.core.errors import (
    ConfigurationError,
    TokenDecryptionError,
    TokenStorageError,
)
from backoffice.services.token_cipher import TokenCipherService, resolve_encryption_key

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_DECRYPTION_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise FileNotFoundError(f"Environment file {env_file} does not exist.")
    _load_env_file(str(env_file))
    settings = AppSettings()  # type: ignore[call-arg]
    resolve_encryption_key(settings.security.encryption_key).unwrap()
    if settings.square.enabled and not (
        settings.square.access_token or settings.square.application_id
    ):
        raise ConfigurationError(
            "SQUARE_ENABLED is set but neither SQUARE_ACCESS_TOKEN nor "
            "SQUARE_APPLICATION_ID is configured."
        )
    return settings


def _undecryptable_services(store: SQLiteTokenStore, cipher: TokenCipherService) -> List[str]:
    """Return the services whose stored tokens the current key cannot read."""
    failed = []
    for record in store.list_records():
        try:
            cipher.decrypt(record.access_token)
            if record.refresh_token:
                cipher.decrypt(record.refresh_token)
        except TokenDecryptionError as exc:
            print(f"  {record.service}: cannot decrypt ({exc})", file=sys.stderr)
            failed.append(record.service)
        else:
            print(f"  {record.service}: ok (expires {record.expires_at.isoformat()})")
    return failed


def _verify_tokens(settings: AppSettings, db_path: Optional[Path]) -> int:
    path = db_path or Path(settings.token_db_path)
    if not path.exists():
        print(f"No token database at {path}; nothing to verify.")
        return EXIT_OK

    cipher = TokenCipherService(secret=settings.security.encryption_key)
    print(f"Checking stored tokens in {path}")
    failed = _undecryptable_services(SQLiteTokenStore(str(path), cipher), cipher)
    if failed:
        print(
            f"Stored tokens for {', '.join(failed)} do not decrypt with the current "
            "ENCRYPTION_KEY. Restore the previous key or reconnect those integrations.",
            file=sys.stderr,
        )
        return EXIT_DECRYPTION_ERROR
    print("All stored tokens decrypt.")
    return EXIT_OK


def _generate_key() -> int:
    """Print a new 32-byte hex key.

    Rotating the key makes every stored token unreadable; reconnect each
    integration afterwards.
    """
    print(secrets.token_hex(32))
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate back-office settings and stored OAuth tokens."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check", help="Validate settings and the encryption key."
    )
    check_parser.add_argument("--env-file", default=".env", type=Path)

    verify_parser = subparsers.add_parser(
        "verify-tokens",
        help="Validate settings and decrypt every stored token.",
    )
    verify_parser.add_argument("--env-file", default=".env", type=Path)
    verify_parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="Token database to inspect (default: TOKEN_DB_PATH).",
    )

    subparsers.add_parser("generate-key", help="Print a fresh ENCRYPTION_KEY.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "generate-key":
        return _generate_key()

    try:
        settings = _load_settings(args.env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(f"Settings validation failed:\n{exc.json(indent=2)}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    if args.command == "check":
        print("Settings OK.")
        return EXIT_OK

    try:
        return _verify_tokens(settings, args.db_path)
    except TokenStorageError as exc:
        print(f"Token storage error: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
