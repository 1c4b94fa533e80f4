"""
Credential Vault

Interface to the credential vault plus an in-memory implementation.

The orchestrator only ever sees placeholders of the form
``{{VAULT_CREDENTIAL.<id>}}``. Real values are substituted just before a
TYPE/SEARCH action runs and are never written to the scratchpad.

Key derivation and encrypted at-rest storage belong to the vault backend;
SessionVault keeps credentials in process memory for the lifetime of the
session and only verifies the passphrase.
"""

import hashlib
import hmac
import logging
import re
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{VAULT_CREDENTIAL\.([A-Za-z0-9_-]+)\}\}")

PBKDF2_ITERATIONS = 200_000


class VaultError(Exception):
    """Base class for vault failures (wrong passphrase, unknown credential, corrupt store)."""


class VaultLockedError(VaultError):
    """The vault must be unlocked before credentials can be stored or read."""


def make_placeholder(credential_id: str) -> str:
    return f"{{{{VAULT_CREDENTIAL.{credential_id}}}}}"


def has_placeholder(text: Optional[str]) -> bool:
    return bool(text) and PLACEHOLDER_PATTERN.search(text) is not None


class CredentialVault(ABC):
    """Contract the orchestrator relies on."""

    @property
    @abstractmethod
    def is_unlocked(self) -> bool:
        """True once a correct passphrase was supplied this session."""

    @abstractmethod
    async def unlock(self, passphrase: str) -> bool:
        """
        Unlock the vault.

        Returns:
            False for a wrong passphrase
        """

    @abstractmethod
    async def store(self, name: str, value: str) -> str:
        """
        Store a credential under a user-chosen name.

        Returns:
            Placeholder referencing the stored credential

        Raises:
            VaultLockedError: The vault is locked
        """

    @abstractmethod
    async def resolve(self, text: str) -> str:
        """
        Replace every placeholder in text with its credential value.

        Raises:
            VaultLockedError: Text holds placeholders and the vault is locked
            VaultError: A placeholder references an unknown credential
        """

    def lock(self) -> None:
        """Forget the session key."""


@dataclass
class _Credential:
    name: str
    value: str = field(repr=False)


class SessionVault(CredentialVault):
    """
    In-memory vault guarded by a passphrase.

    The first unlock on an uninitialized vault sets the passphrase; later
    unlocks must match it.
    """

    def __init__(self, passphrase: Optional[str] = None):
        self._salt = secrets.token_bytes(16)
        self._check: Optional[bytes] = None
        self._unlocked = False
        self._credentials: dict[str, _Credential] = {}
        if passphrase:
            self._check = self._derive(passphrase)

    @property
    def is_initialized(self) -> bool:
        return self._check is not None

    @property
    def is_unlocked(self) -> bool:
        return self._unlocked

    def _derive(self, passphrase: str) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", passphrase.encode("utf-8"), self._salt, PBKDF2_ITERATIONS)

    async def unlock(self, passphrase: str) -> bool:
        if not passphrase:
            return False
        derived = self._derive(passphrase)
        if self._check is None:
            self._check = derived
            logger.info("Vault initialized")
        elif not hmac.compare_digest(derived, self._check):
            logger.warning("Vault unlock failed: incorrect passphrase")
            return False
        self._unlocked = True
        logger.info("Vault unlocked for this session")
        return True

    def lock(self) -> None:
        self._unlocked = False

    async def store(self, name: str, value: str) -> str:
        if not self._unlocked:
            raise VaultLockedError("Vault is locked. Please unlock it first.")
        if not name or not name.strip():
            raise VaultError("A credential needs a name")
        credential_id = f"cred-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        self._credentials[credential_id] = _Credential(name=name.strip(), value=value)
        logger.info("Saved credential '%s' as %s", name, credential_id)
        return make_placeholder(credential_id)

    async def resolve(self, text: str) -> str:
        if not has_placeholder(text):
            return text
        if not self._unlocked:
            raise VaultLockedError("Vault is locked. Please unlock it first.")

        def substitute(match: re.Match) -> str:
            credential = self._credentials.get(match.group(1))
            if credential is None:
                raise VaultError(f"Unknown credential: {match.group(1)}")
            return credential.value

        return PLACEHOLDER_PATTERN.sub(substitute, text)

    def names(self) -> list[str]:
        return [credential.name for credential in self._credentials.values()]
