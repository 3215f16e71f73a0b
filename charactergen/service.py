# charactergen/service.py

"""
`LLMService`: the call-style entry point used by the HTTP layer and by
library callers.

    request_type + context
        → TemplateStore (resolve, cache, render)
        → ProviderClient.chat_with_schema / chat
        → validated dict

On top of that it offers the character-level helpers (background, traits,
values, personality details, equipment, spells, portrait) that build the
template context from a character mapping.

All collaborators are injected; `from_settings()` wires the production set.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from charactergen.adapters.adapter import create_provider
from charactergen.adapters.base import ProviderClient
from charactergen.config import Settings
from charactergen.exceptions import ConfigurationError, ValidationError, Violation
from charactergen.imaging.adapter import create_image_provider
from charactergen.imaging.base import CLASS_DETAILS, ImageProvider, ImageResult
from charactergen.prompts import TemplateStore
from charactergen.route_logic import select_image_provider, select_provider

logger = logging.getLogger(__name__)

SPELLCASTING_CLASSES = frozenset({"Wizard", "Sorcerer", "Warlock", "Bard", "Cleric", "Druid"})

PORTRAIT_REQUIRED = ("race", "class", "level", "alignment")


def character_context(character: Mapping) -> Dict[str, Any]:
    """
    Template context for a character mapping.

    Accepts `class_type` as an alias of `class`.
    """
    context = {k: v for k, v in character.items() if v is not None}
    if "class" not in context and "class_type" in context:
        context["class"] = context["class_type"]
    return context


class LLMService:
    """
    Renders prompt templates and dispatches them to a provider client.

    Args:
        provider (ProviderClient): The LLM backend.
        provider_name (str): Name used for template lookup ("anthropic", "mock", ...).
        templates (TemplateStore): Prompt template source.
        image_provider (ImageProvider): Optional portrait backend.
    """

    def __init__(
        self,
        provider: ProviderClient,
        provider_name: str,
        templates: TemplateStore,
        image_provider: Optional[ImageProvider] = None,
    ):
        self.provider = provider
        self.provider_name = provider_name
        self.templates = templates
        self.image_provider = image_provider

    @classmethod
    def from_settings(cls, settings: Settings, **client_options) -> "LLMService":
        """
        Build the service from process settings.

        Args:
            settings (Settings): Process configuration.
            **client_options: Passed to the LLM adapter (http_client, sleep, ...).
        """
        name, config = select_provider(settings)
        provider = create_provider(name, config, **client_options)

        image_provider = None
        selection = select_image_provider(settings)
        if selection is not None:
            image_provider = create_image_provider(*selection)

        templates = TemplateStore(settings.prompts_dir, settings.app_env)
        logger.info(f"[LLMService] using provider={name}, image_provider={settings.image_provider or '-'}")
        return cls(provider, name, templates, image_provider)

    # ─── Generic entry points ──────────────────────────────────────────────────

    def generate(self, request_type: str, context: Optional[Mapping] = None) -> Dict[str, Any]:
        """
        Render the template for `request_type` and send it to the provider.

        Returns:
            Dict[str, Any]: The provider's response, validated against the
            template's schema when it declares one.

        Raises:
            TemplateNotFoundError: No template for this request type.
            ValidationError: The template file is malformed.
            ProviderError: The provider call failed.
        """
        template, prompt = self.templates.generate(request_type, self.provider_name, context)
        messages = [{"role": "user", "content": prompt.user_prompt}]

        logger.info(f"[LLMService] {request_type} via {self.provider_name}")
        if template.response_schema is not None:
            return self.provider.chat_with_schema(
                messages,
                template.response_schema,
                system_prompt=prompt.system_prompt,
                provider_options=template.overrides_for(self.provider_name),
            )
        return self.provider.chat(messages, system_prompt=prompt.system_prompt)

    def chat(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
        schema: Optional[Any] = None,
    ) -> Dict[str, Any]:
        logger.info(f"[LLMService] chat with {len(messages)} messages via {self.provider_name}")
        return self.provider.chat(messages, system_prompt=system_prompt, schema=schema)

    def test_connection(self) -> bool:
        return self.provider.test_connection()

    # ─── Character helpers ─────────────────────────────────────────────────────

    def generate_background(self, character: Mapping) -> Dict[str, Any]:
        return self.generate("character_background", character_context(character))

    def generate_traits(self, character: Mapping) -> Dict[str, Any]:
        return self.generate("character_traits", character_context(character))

    def generate_values(self, character: Mapping) -> Dict[str, Any]:
        return self.generate("character_values", character_context(character))

    def generate_personality_details(self, character: Mapping) -> Dict[str, Any]:
        return self.generate("character_personality_details", character_context(character))

    def suggest_equipment(self, character: Mapping) -> Dict[str, Any]:
        return self.generate("suggest_equipment", character_context(character))

    def suggest_spells(self, character: Mapping) -> Dict[str, Any]:
        """Spell suggestions, or `{}` for classes that cannot cast spells."""
        context = character_context(character)
        if context.get("class") not in SPELLCASTING_CLASSES:
            logger.info(f"[LLMService] skipping spells for non-caster class {context.get('class')}")
            return {}
        return self.generate("suggest_spells", context)

    def generate_portrait(self, character: Mapping) -> ImageResult:
        """
        Write a portrait prompt with the LLM, then render it with the image provider.

        Raises:
            ConfigurationError: No image provider is configured.
            ValidationError: The character lacks race, class, level or alignment.
        """
        if self.image_provider is None:
            raise ConfigurationError("image generation is not configured")

        context = character_context(character)
        missing = [key for key in PORTRAIT_REQUIRED if not context.get(key)]
        if missing:
            raise ValidationError(
                "Cannot generate portrait",
                [Violation(key, "required field missing") for key in missing],
            )

        context["class_details"] = CLASS_DETAILS.get(context["class"], [])
        description = self.generate("character_portrait", context)
        return self.image_provider.generate_image(description["prompt"])
