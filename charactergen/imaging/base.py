# charactergen/imaging/base.py

"""
Defines `ImageProvider`, the contract for image-generation backends, and
the class-specific visual cues used when writing portrait prompts.

Image providers share the LLM clients' retry helper: throttling, 5xx and
transport failures are retried with exponential backoff, everything else
fails at once.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict
from tenacity import RetryError

from charactergen.adapters.base import parse_retry_after
from charactergen.config import ImageProviderConfig
from charactergen.exceptions import (
    ConfigurationError,
    ImageGenerationError,
    ProviderUnavailableError,
    RateLimitError,
)
from charactergen.retry import RetryPolicy, build_retrying

logger = logging.getLogger(__name__)

CLASS_DETAILS: Dict[str, List[str]] = {
    "Wizard": ["magical energy surrounding their hands", "arcane symbols floating nearby", "glowing spell effects"],
    "Fighter": ["battle-worn armor details", "warrior's confident stance", "combat-ready appearance"],
    "Rogue": ["shadowy elements around them", "cunning expression", "stealthy attire"],
    "Cleric": ["holy symbols", "divine light effects", "religious vestments"],
    "Paladin": ["righteous aura", "noble bearing", "holy armor details"],
    "Druid": ["natural elements", "wild energy effects", "organic accessories"],
    "Bard": ["musical instrument details", "charismatic expression", "artistic flair"],
    "Barbarian": ["primal energy effects", "fierce expression", "tribal elements"],
    "Monk": ["serene focus", "martial arts stance", "spiritual energy"],
    "Ranger": ["wilderness gear details", "keen-eyed expression", "natural camouflage elements"],
    "Sorcerer": ["innate magical aura", "wild energy effects", "mystical presence"],
    "Warlock": ["eldritch energy effects", "otherworldly elements", "subtle patron influences"],
}


class ImageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    model: str
    provider: str
    prompt: str
    revised_prompt: Optional[str] = None
    size: Optional[str] = None
    quality: Optional[str] = None
    style: Optional[str] = None


class ImageProvider(ABC):
    """
    Abstract base class for image-generation backends.

    Args:
        config (ImageProviderConfig): Immutable connection parameters.
        http_client (httpx.Client): Optional client, e.g. a `MockTransport` one.
        sleep (Callable): Backoff sleep, injectable for tests.
    """

    name = "base"
    RETRYABLE = (RateLimitError, ProviderUnavailableError)

    def __init__(
        self,
        config: ImageProviderConfig,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not config.api_key:
            raise ConfigurationError(f"Missing {self.name} API key")
        self.config = config
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(timeout=httpx.Timeout(config.timeout))
        self.retry_policy = RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )
        self._sleep = sleep

    def generate_image(self, prompt: str) -> ImageResult:
        """
        Generate one image for `prompt`.

        Raises:
            ConfigurationError: Rejected credentials.
            ImageGenerationError: Any other failure, including exhausted retries.
        """
        if not prompt or not prompt.strip():
            raise ImageGenerationError("image prompt must not be empty")

        logger.info(f"[{self.__class__.__name__}] generating image, prompt length {len(prompt)} characters")
        retrying = build_retrying(self.retry_policy, self.RETRYABLE, sleep=self._sleep, label=self.__class__.__name__)
        try:
            for attempt in retrying:
                with attempt:
                    result = self._generate(prompt)
        except RetryError as e:
            last = e.last_attempt.exception()
            count = e.last_attempt.attempt_number
            raise ImageGenerationError(f"Failed after {count} attempts: {last.detail}", attempts=count) from last
        return result

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    @abstractmethod
    def _generate(self, prompt: str) -> ImageResult:
        ...

    def _post(self, url: str, headers: Dict[str, str], body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.http_client.post(url, headers=headers, json=body, timeout=self.config.timeout)
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(f"connection failed: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise ConfigurationError("Invalid API key")
        if status == 429:
            raise RateLimitError("Rate limit exceeded", retry_after=parse_retry_after(response))
        if status >= 500:
            raise ProviderUnavailableError(f"API error: HTTP {status}")
        if status >= 400:
            raise ImageGenerationError(f"API error: {_error_message(response)}")

        try:
            data = response.json()
        except ValueError as e:
            raise ImageGenerationError("image API returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ImageGenerationError("image API returned invalid JSON")
        return data


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error") or body.get("detail")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
    return response.reason_phrase
