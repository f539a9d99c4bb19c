"""Typed exceptions for llmkv."""

from __future__ import annotations


class LLMKeyVaultError(Exception):
    """Base exception for llmkv failures."""


class ConfigError(ValueError, LLMKeyVaultError):
    """Raised when configuration values are missing or invalid."""


# ============================================================================
# Vault
# ============================================================================


class VaultError(LLMKeyVaultError):
    """Base exception for credential vault failures."""


class VaultConfigError(VaultError):
    """Raised at startup when the encryption key is missing or malformed."""


class EnvelopeFormatError(VaultError):
    """Raised when a stored envelope has an unknown version or bad shape."""


class DecryptionError(VaultError):
    """Raised when an envelope fails its authentication check."""


class CredentialNotFound(VaultError):
    """Raised when no usable credential exists for a (user, provider) pair.

    The message carries identifiers and an opaque status code only.
    """

    def __init__(self, user_id: str, provider: str, status: str = "absent") -> None:
        self.user_id = user_id
        self.provider = provider
        self.status = status
        super().__init__(
            f"No usable credential for provider '{provider}' "
            f"(user '{user_id}', status={status})"
        )


class StorageError(VaultError):
    """Raised when the credential backing store cannot be read or written."""


# ============================================================================
# Gateway
# ============================================================================


class GatewayError(LLMKeyVaultError):
    """Base exception for dispatch failures decided by the gateway."""


class UnsupportedProvider(GatewayError):
    """Raised when no adapter is registered for the requested provider."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"No adapter registered for provider: {provider}")


class MissingCredential(GatewayError):
    """Raised when the vault has no usable secret for the provider."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Missing API key for provider: {provider}")


class InvalidRequestError(GatewayError, ValueError):
    """Raised when a chat or compare request is malformed."""


class CompareLimitError(InvalidRequestError):
    """Raised when a compare call names too many or too few targets."""


# ============================================================================
# Providers
# ============================================================================


class ProviderError(LLMKeyVaultError):
    """Base exception for upstream provider failures."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        self.message = message
        super().__init__(message)


class UpstreamHTTPError(ProviderError):
    """Raised when an upstream provider answers with a non-2xx status."""

    def __init__(self, status: int, message: str, provider: str | None = None) -> None:
        self.status = status
        super().__init__(message, provider)

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.message}"

    @property
    def is_transient(self) -> bool:
        return self.status == 429 or self.status >= 500

    @classmethod
    def from_status(
        cls, status: int, message: str, provider: str | None = None
    ) -> UpstreamHTTPError:
        """Build the most specific subclass for ``status``."""
        if status in (401, 403):
            return UpstreamAuthError(status, message, provider)
        if status == 429:
            return UpstreamRateLimitError(status, message, provider)
        if status >= 500:
            return UpstreamServerError(status, message, provider)
        return cls(status, message, provider)


class UpstreamAuthError(UpstreamHTTPError):
    """401/403: the credential was rejected."""


class UpstreamRateLimitError(UpstreamHTTPError):
    """429: the provider is throttling this credential."""


class UpstreamServerError(UpstreamHTTPError):
    """5xx: transient provider-side failure."""


class UpstreamConnectionError(ProviderError):
    """Raised when the provider cannot be reached or the transport breaks."""


class StreamTranslationError(ProviderError):
    """Raised when an upstream stream payload cannot be translated."""


# ============================================================================
# Context
# ============================================================================


class SummarizationFailure(LLMKeyVaultError):
    """Raised internally when history summarization fails.

    The context manager logs it and falls back to uncompressed history.
    """
