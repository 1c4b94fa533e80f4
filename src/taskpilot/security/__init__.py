"""
Security Module

Navigation policy and the credential vault:
- UrlPolicy: trusted hosts, excluded hosts and local URL vetoes
- CredentialVault: placeholder-based credential storage
"""

from .url_policy import (
    UrlCheck,
    UrlPolicy,
    create_url_policy,
    normalize_host,
)
from .vault import (
    PLACEHOLDER_PATTERN,
    CredentialVault,
    SessionVault,
    VaultError,
    VaultLockedError,
    has_placeholder,
    make_placeholder,
)

__all__ = [
    # URL policy
    "UrlCheck",
    "UrlPolicy",
    "create_url_policy",
    "normalize_host",
    # Vault
    "PLACEHOLDER_PATTERN",
    "CredentialVault",
    "SessionVault",
    "VaultError",
    "VaultLockedError",
    "has_placeholder",
    "make_placeholder",
]
