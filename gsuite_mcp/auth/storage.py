"""File-based credential store.

One JSON file per authenticated identity, named ``<identity>.json``, in the
credentials directory. Files hold long-lived secrets, so the directory is
created with mode 0700 and every file is written with mode 0600.

Storage location: ~/.config/gsuite-mcp/credentials/{identity}.json

The directory is ordinary shared filesystem state: there is no cross-process
locking. Writes go through a temporary file and ``os.replace`` so a reader
never observes a half-written slot.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from gsuite_mcp import config
from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.utils.errors import NoCredentialsError, StoreIOError, ValidationError

logger = logging.getLogger(__name__)

SLOT_SUFFIX = ".json"
DIR_MODE = 0o700
FILE_MODE = 0o600


class CredentialStore:
    """Durable one-record-per-identity persistence.

    Attributes:
        _base_dir: Directory where credential files are stored.

    Example:
        >>> store = CredentialStore(Path("/tmp/creds"))
        >>> store.save(record)
        >>> store.list_identities()
        ['user@example.com']
        >>> store.load("user@example.com").access_token
        'ya29...'
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        """Initialize the store.

        The directory is not created until the first ``save``; listing a
        store whose directory does not exist yet yields no identities.

        Args:
            base_dir: Directory for credential files. Defaults to
                ``config.credentials_dir()``.
        """
        self._base_dir = base_dir if base_dir is not None else config.credentials_dir()
        logger.debug("CredentialStore using %s", self._base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _slot_path(self, identity: str) -> Path:
        """Get the file path for an identity's credential slot.

        Raises:
            ValidationError: If the identity is empty or could escape the
                credentials directory.
        """
        if (
            not identity
            or identity in (".", "..")
            or identity.startswith(".")
            or any(sep in identity for sep in ("/", "\\", "\x00"))
        ):
            raise ValidationError(
                "Invalid identity for credential storage",
                field="identity",
                details={"identity": identity[:50]},
            )
        return self._base_dir / f"{identity}{SLOT_SUFFIX}"

    def save(self, record: CredentialRecord) -> None:
        """Write a record to its identity's slot, replacing prior content.

        Args:
            record: The credential to persist.

        Raises:
            StoreIOError: If the directory or file cannot be written.
        """
        path = self._slot_path(record.identity)

        if not record.refresh_token:
            logger.warning(
                "Saving credentials for %s without a refresh token; "
                "they will stop working when the access token expires",
                record.identity,
            )

        tmp_name: str | None = None
        try:
            self._base_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._base_dir, prefix=".tmp-", suffix=SLOT_SUFFIX
            )
            with os.fdopen(fd, "w") as f:
                f.write(record.to_json())
            os.chmod(tmp_name, FILE_MODE)
            os.replace(tmp_name, path)
            tmp_name = None
            logger.info("Saved credentials for %s", record.identity)

        except OSError as e:
            logger.error("Failed to save credentials for %s: %s", record.identity, e)
            raise StoreIOError(
                f"Failed to save credentials: {e}",
                details={"identity": record.identity, "path": str(path)},
            ) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temporary file %s", tmp_name)

    def load(self, identity: str) -> CredentialRecord:
        """Load the record for an identity.

        Raises:
            NoCredentialsError: If the identity has no slot.
            StoreIOError: If the slot exists but cannot be read or parsed.
        """
        path = self._slot_path(identity)

        try:
            raw = path.read_text()
        except FileNotFoundError:
            logger.debug("No credentials found for %s", identity)
            raise NoCredentialsError(identity) from None
        except OSError as e:
            logger.error("Failed to read credentials for %s: %s", identity, e)
            raise StoreIOError(
                f"Failed to read credentials for {identity}: {e}",
                details={"identity": identity, "path": str(path)},
            ) from e

        try:
            record = CredentialRecord.from_json(identity, raw)
        except (ValueError, PydanticValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error("Corrupt credential file for %s: %s", identity, e)
            raise StoreIOError(
                f"Failed to parse credentials for {identity}",
                details={"identity": identity, "path": str(path), "error": str(e)},
            ) from e

        logger.debug("Loaded credentials for %s", identity)
        return record

    def has(self, identity: str) -> bool:
        """Check whether a slot exists for an identity."""
        try:
            return self._slot_path(identity).is_file()
        except ValidationError:
            return False

    def list_identities(self) -> list[str]:
        """List every identity with a slot, sorted ascending.

        Returns:
            Sorted identities; empty if the directory does not exist.

        Raises:
            StoreIOError: If the directory exists but cannot be listed.
        """
        try:
            entries = list(self._base_dir.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Failed to list credentials in %s: %s", self._base_dir, e)
            raise StoreIOError(
                f"Failed to list credentials: {e}",
                details={"path": str(self._base_dir)},
            ) from e

        identities = {
            entry.name[: -len(SLOT_SUFFIX)]
            for entry in entries
            if entry.name.endswith(SLOT_SUFFIX)
            and not entry.name.startswith(".")
            and len(entry.name) > len(SLOT_SUFFIX)
            and entry.is_file()
        }
        return sorted(identities)

    def default_identity(self) -> str | None:
        """Return the first identity in lexical order, or None."""
        identities = self.list_identities()
        return identities[0] if identities else None

    def other_identities(self, identity: str) -> list[str]:
        """List authenticated identities other than the given one."""
        return [other for other in self.list_identities() if other != identity]


__all__ = [
    "CredentialStore",
]
