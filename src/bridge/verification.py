"""Webhook verification protocol and result types.

A verifier is responsible for:
1. Fetching the signing secret it needs (from configuration)
2. Performing the actual verification
3. Returning success/failure without raising
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass
class VerificationResult:
    """Result of webhook verification."""

    success: bool
    error: str | None = None


class WebhookVerifier(Protocol):
    """Protocol for webhook verification handlers."""

    def verify(self, headers: dict[str, str], body: bytes) -> VerificationResult:
        """Verify a webhook request.

        Args:
            headers: HTTP headers from the webhook request (lower-cased names)
            body: Raw request body as bytes, exactly as received

        Returns:
            VerificationResult indicating success or failure with error message
        """
        ...


# Raises ValueError when the request does not verify
VerifyFunc = Callable[[dict[str, str], bytes, str], None]


class BaseSigningSecretVerifier:
    """Base class for verifiers that check a shared signing secret.

    Subclasses only need to define:
    - source_type: The source identifier used in error messages (e.g., "zoom")
    - verify_func: The function that performs the actual verification
    - get_secret: Where the signing secret comes from
    """

    source_type: str
    verify_func: VerifyFunc

    def get_secret(self) -> str | None:
        raise NotImplementedError

    def verify(self, headers: dict[str, str], body: bytes) -> VerificationResult:
        signing_secret = self.get_secret()
        if not signing_secret:
            return VerificationResult(
                success=False,
                error=f"No signing secret configured for {self.source_type} webhooks",
            )

        try:
            self.verify_func(headers, body, signing_secret)
            return VerificationResult(success=True)
        except ValueError as e:
            return VerificationResult(success=False, error=str(e))
