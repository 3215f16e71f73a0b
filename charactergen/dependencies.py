# charactergen/dependencies.py

"""
Dependency injection helpers for the FastAPI endpoints.

The `LLMService` (provider client, rate limiter, template cache, image
provider) is built once per process from `settings` and shared by all
requests. Tests swap it out with `app.dependency_overrides[get_llm_service]`.
"""

from functools import lru_cache

from fastapi import Depends, Request

from charactergen.config import settings
from charactergen.service import LLMService


@lru_cache(maxsize=1)
def get_llm_service() -> LLMService:
    """
    FastAPI dependency returning the process-wide `LLMService`.

    Raises:
        ConfigurationError: If the configured provider cannot be built.
    """
    return LLMService.from_settings(settings)


def bind_llm_service(request: Request, service: LLMService = Depends(get_llm_service)) -> LLMService:
    """
    Same service as `get_llm_service`, with its provider name recorded on
    `request.state` for the access log and request metrics.
    """
    request.state.provider = service.provider_name
    return service
