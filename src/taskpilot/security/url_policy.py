"""
URL Policy

Local checks run before the Verifier role sees a navigation target:
- Trusted hosts skip verification entirely
- Hosts excluded for the current task (three strikes) are refused
- Obviously risky URLs are vetoed without asking the model
"""

import ipaddress
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlparse


@dataclass
class UrlCheck:
    """
    Result of a policy check on a URL.

    Attributes:
        allowed: False when the URL is vetoed locally
        trusted: True when no further verification is needed
        reason: Why the URL was vetoed (or trusted)
    """

    allowed: bool
    trusted: bool = False
    reason: str = ""


def normalize_host(host: Optional[str]) -> Optional[str]:
    if not host:
        return None
    host = host.lower().rstrip(".")
    return host[4:] if host.startswith("www.") else host


class UrlPolicy:
    """
    Decides which navigation targets need the Verifier and which are refused.

    Usage:
        >>> policy = UrlPolicy(trusted=["google.com"])
        >>> policy.check("https://www.google.com/search?q=x").trusted
        True
    """

    def __init__(
        self,
        trusted: Iterable[str] = (),
        max_host_labels: int = 5,
    ):
        """
        Initialize the policy.

        Args:
            trusted: Host names that never need verification (subdomains included)
            max_host_labels: Deeper host names are vetoed
        """
        self.trusted = {normalize_host(host) for host in trusted if host}
        self.max_host_labels = max_host_labels

        self.allowed_schemes = {"http", "https"}

        # Direct downloads of executables and installers
        self.blocked_extensions = [
            ".exe",
            ".msi",
            ".apk",
            ".scr",
            ".bat",
            ".cmd",
            ".dmg",
            ".pkg",
            ".jar",
            ".vbs",
        ]

    def is_trusted(self, url: str) -> bool:
        host = normalize_host(urlparse(url).hostname)
        if not host:
            return False
        return any(host == trusted or host.endswith("." + trusted) for trusted in self.trusted)

    def check(self, url: str, excluded: Iterable[str] = ()) -> UrlCheck:
        """
        Check a navigation target.

        Args:
            url: Target URL
            excluded: Hosts refused for the current task

        Returns:
            UrlCheck with the verdict
        """
        parsed = urlparse(url)
        host = normalize_host(parsed.hostname)

        if parsed.scheme.lower() not in self.allowed_schemes:
            return UrlCheck(allowed=False, reason=f"Scheme '{parsed.scheme}' is not allowed")
        if not host:
            return UrlCheck(allowed=False, reason="URL has no host")

        excluded_hosts = {normalize_host(h) for h in excluded}
        if host in excluded_hosts:
            return UrlCheck(allowed=False, reason=f"{host} is excluded after repeated failures")

        if self.is_trusted(url):
            return UrlCheck(allowed=True, trusted=True, reason=f"{host} is trusted")

        if parsed.username or parsed.password:
            return UrlCheck(allowed=False, reason="URL embeds credentials")
        if any(label.startswith("xn--") for label in host.split(".")):
            return UrlCheck(allowed=False, reason="Punycode host name")
        if _is_ip_address(host):
            return UrlCheck(allowed=False, reason="Raw IP address host")
        if len(host.split(".")) > self.max_host_labels:
            return UrlCheck(allowed=False, reason="Excessive subdomain depth")

        path = parsed.path.lower()
        for extension in self.blocked_extensions:
            if path.endswith(extension):
                return UrlCheck(allowed=False, reason=f"Executable download ({extension})")

        return UrlCheck(allowed=True)


def _is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def create_url_policy(trusted: Iterable[str] = ()) -> UrlPolicy:
    """
    Factory function to create a URL policy.

    Args:
        trusted: Trusted host names

    Returns:
        Configured UrlPolicy instance
    """
    return UrlPolicy(trusted=trusted)
