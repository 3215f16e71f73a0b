# charactergen/exceptions.py

"""
Error taxonomy for the character generation provider layer.

Every failure that crosses the provider boundary is one of these classes.
Callers never see raw `httpx` or `json` exceptions: provider clients classify
them first.

All errors carry a human-readable `detail` and the HTTP status code the
FastAPI exception handler in `charactergen.main` responds with.

Hierarchy:

    CharacterGenError
    ├── ConfigurationError          missing/invalid setup, never retried
    ├── TemplateNotFoundError       no prompt template for a request type
    ├── ValidationError             malformed template or schema-invalid value
    ├── SchemaError                 malformed schema definition
    └── ProviderError               terminal provider failure
        ├── RateLimitError          429 from the backend (retried internally)
        ├── ProviderUnavailableError  5xx / timeout / connection (retried internally)
        ├── ResponseFormatError     invalid JSON or schema mismatch (retried once)
        └── ImageGenerationError    image backend failure
"""

from dataclasses import dataclass
from typing import List, Optional


class CharacterGenError(Exception):
    """
    Base class for every error raised by this package.

    Args:
        detail (str): Human-readable description of the error.
        status_code (int): HTTP status code to be returned to API clients.

    Example:
        raise ConfigurationError("unknown provider: cohere")
    """
    status_code = 500

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(detail)


class ConfigurationError(CharacterGenError):
    """Missing or invalid setup (API key, model, unknown provider name)."""


class TemplateNotFoundError(CharacterGenError):
    """No prompt template exists for a request type / provider combination."""
    status_code = 404


@dataclass(frozen=True)
class Violation:
    """A single field-level schema violation, e.g. `weapons[1].damage: expected string`."""
    path: str
    message: str

    def __str__(self):
        return f"{self.path}: {self.message}"


class ValidationError(CharacterGenError):
    """
    A template or a value failed validation.

    `violations` lists every field-level problem found; it is empty for
    template-shape errors that are not tied to a single field.
    """
    status_code = 422

    def __init__(self, detail: str, violations: Optional[List[Violation]] = None):
        self.violations = list(violations or [])
        if self.violations:
            detail = f"{detail}: " + "; ".join(str(v) for v in self.violations)
        super().__init__(detail)


class SchemaError(CharacterGenError):
    """A schema definition is itself malformed (configuration error)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"invalid schema: {reason}")


class ProviderError(CharacterGenError):
    """
    Terminal failure talking to a provider.

    `attempts` is the number of network attempts made before giving up
    (0 when the request was rejected locally).
    """
    status_code = 502

    def __init__(self, detail: str, status_code: Optional[int] = None, attempts: int = 0):
        self.attempts = attempts
        super().__init__(detail, status_code)


class RateLimitError(ProviderError):
    """The backend signalled throttling. `retry_after` is in seconds when known."""
    status_code = 429

    def __init__(self, detail: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(detail)


class ProviderUnavailableError(ProviderError):
    """Server-side error, timeout or connection failure."""
    status_code = 503


class ResponseFormatError(ProviderError):
    """The provider answered but broke the output contract (bad JSON or schema mismatch)."""

    def __init__(self, detail: str, violations: Optional[List[Violation]] = None):
        self.violations = list(violations or [])
        super().__init__(detail)


class ImageGenerationError(ProviderError):
    """An image backend failed to produce an image."""
