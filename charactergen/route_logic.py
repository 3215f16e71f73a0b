# charactergen/route_logic.py

"""
Selects the LLM and image providers from process settings.

This is the only place that turns `Settings` into the explicit
`ProviderConfig` / `ImageProviderConfig` objects the factories accept, so
adapters never read environment variables themselves.

🔁 Purpose:
- Resolve which provider name to use (explicit override, else `LLM_PROVIDER`)
- Build its connection parameters, including the shared retry and
  rate-limit knobs
"""

from typing import Optional, Tuple

from charactergen.config import ImageProviderConfig, ProviderConfig, Settings


def select_provider(settings: Settings, name: Optional[str] = None) -> Tuple[str, ProviderConfig]:
    """
    Determine which LLM provider to use and how to reach it.

    Args:
        settings (Settings): Process configuration.
        name (str): Optional override of `settings.llm_provider`.

    Returns:
        Tuple[str, ProviderConfig]: e.g. ("anthropic", ProviderConfig(model="claude-3-5-sonnet-..."))

    Notes:
    - Unknown names still get a config (credentials empty); the factory is
      what rejects them.
    """
    provider = (name or settings.llm_provider).strip().lower()

    shared = dict(
        timeout=settings.llm_request_timeout,
        max_retries=settings.llm_max_retries,
        retry_base_delay=settings.llm_retry_base_delay,
        retry_max_delay=settings.llm_retry_max_delay,
        rate_limit_requests=settings.llm_rate_limit_requests,
        rate_limit_window=settings.llm_rate_limit_window,
    )

    # ─── Anthropic ─────────────────────────────────────────────────────────────
    if provider == "anthropic":
        return provider, ProviderConfig(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            temperature=settings.anthropic_temperature,
            endpoint_url=settings.anthropic_api_url,
            **shared,
        )

    # ─── OpenAI ────────────────────────────────────────────────────────────────
    if provider == "openai":
        return provider, ProviderConfig(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
            endpoint_url=settings.openai_api_url,
            **shared,
        )

    # ─── Mock / fallback ───────────────────────────────────────────────────────
    return provider, ProviderConfig(model=provider, **shared)


def select_image_provider(settings: Settings) -> Optional[Tuple[str, ImageProviderConfig]]:
    """
    Determine the image provider, or None when portraits are disabled.
    """
    provider = settings.image_provider
    if not provider:
        return None

    shared = dict(
        max_retries=settings.llm_max_retries,
        retry_base_delay=settings.llm_retry_base_delay,
        retry_max_delay=settings.llm_retry_max_delay,
    )

    if provider == "fal":
        return provider, ImageProviderConfig(
            api_key=settings.fal_api_key,
            model=settings.fal_model,
            endpoint_url=settings.fal_api_url,
            **shared,
        )

    # DALL-E shares the OpenAI key
    return provider, ImageProviderConfig(
        api_key=settings.openai_api_key,
        model=settings.dalle_model,
        endpoint_url=settings.dalle_api_url,
        size=settings.dalle_size,
        quality=settings.dalle_quality,
        style=settings.dalle_style,
        **shared,
    )
