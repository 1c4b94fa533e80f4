"""
Decision Service Errors

Exception taxonomy shared by every provider and the DecisionClient.
Providers translate their transport failures into these types so the
retry policy never has to know which vendor SDK produced an error.
"""

from typing import Optional


class DecisionServiceError(Exception):
    """A decision call failed and retrying will not help."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientServiceError(DecisionServiceError):
    """Rate limiting, overload, timeouts or dropped connections."""


class CapacityExhaustedError(DecisionServiceError):
    """The account quota or credit balance is used up."""


class MalformedResponseError(DecisionServiceError):
    """The response could not be parsed as structured data, even after repair."""


# Markers providers put in error bodies when the quota, not the rate, is exhausted
CAPACITY_MARKERS = (
    "resource_exhausted",
    "insufficient_quota",
    "quota exceeded",
    "exceeded your current quota",
    "credit balance is too low",
    "billing",
)

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504, 529}


def classify_status(status_code: int, body: str = "") -> DecisionServiceError:
    """
    Map an HTTP status and error body onto the error taxonomy.

    Args:
        status_code: HTTP status code from the provider
        body: Response body or error message

    Returns:
        The matching DecisionServiceError subclass instance
    """
    lowered = (body or "").lower()
    message = f"Decision service error: {status_code} - {body[:500] if body else ''}"

    if status_code == 402 or any(marker in lowered for marker in CAPACITY_MARKERS):
        return CapacityExhaustedError(message, status_code)
    if status_code in TRANSIENT_STATUS_CODES:
        return TransientServiceError(message, status_code)
    return DecisionServiceError(message, status_code)
