"""
Unit tests for the session credential vault.
"""

import pytest

from taskpilot.security import (
    SessionVault,
    VaultError,
    VaultLockedError,
    has_placeholder,
    make_placeholder,
)


class TestSessionVault:
    """Passphrase handling, storage and placeholder resolution."""

    @pytest.fixture
    def vault(self):
        return SessionVault(passphrase="correct horse")

    @pytest.mark.asyncio
    async def test_starts_locked(self, vault):
        assert vault.is_initialized
        assert not vault.is_unlocked

    @pytest.mark.asyncio
    async def test_wrong_passphrase(self, vault):
        assert await vault.unlock("battery staple") is False
        assert not vault.is_unlocked

    @pytest.mark.asyncio
    async def test_first_unlock_sets_passphrase(self):
        vault = SessionVault()
        assert not vault.is_initialized
        assert await vault.unlock("new secret")
        vault.lock()
        assert await vault.unlock("other") is False
        assert await vault.unlock("new secret")

    @pytest.mark.asyncio
    async def test_empty_passphrase_is_rejected(self):
        assert await SessionVault().unlock("") is False

    @pytest.mark.asyncio
    async def test_store_requires_unlock(self, vault):
        with pytest.raises(VaultLockedError):
            await vault.store("bank", "s3cret")

    @pytest.mark.asyncio
    async def test_store_returns_placeholder_and_resolves(self, vault):
        await vault.unlock("correct horse")
        placeholder = await vault.store("bank", "s3cret")

        assert has_placeholder(placeholder)
        assert "s3cret" not in placeholder
        assert await vault.resolve(f"pw={placeholder}") == "pw=s3cret"
        assert vault.names() == ["bank"]

    @pytest.mark.asyncio
    async def test_store_needs_a_name(self, vault):
        await vault.unlock("correct horse")
        with pytest.raises(VaultError):
            await vault.store("  ", "s3cret")

    @pytest.mark.asyncio
    async def test_plain_text_resolves_while_locked(self, vault):
        assert await vault.resolve("hello") == "hello"

    @pytest.mark.asyncio
    async def test_placeholder_resolution_requires_unlock(self, vault):
        with pytest.raises(VaultLockedError):
            await vault.resolve(make_placeholder("cred-1"))

    @pytest.mark.asyncio
    async def test_unknown_credential(self, vault):
        await vault.unlock("correct horse")
        with pytest.raises(VaultError) as exc_info:
            await vault.resolve(make_placeholder("cred-missing"))
        assert not isinstance(exc_info.value, VaultLockedError)


class TestPlaceholders:

    def test_format(self):
        assert make_placeholder("cred-1") == "{{VAULT_CREDENTIAL.cred-1}}"

    def test_detection(self):
        assert has_placeholder("user {{VAULT_CREDENTIAL.abc_1}}")
        assert not has_placeholder("{{VAULT_CREDENTIAL.}}")
        assert not has_placeholder(None)
