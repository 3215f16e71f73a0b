# charactergen/adapters/openai_adapter.py

"""
OpenAI Adapter for the character generation service.

Calls the Chat Completions endpoint directly over `httpx` so that status
codes and `Retry-After` headers reach the shared classifier untouched.

Structured output uses JSON mode (`response_format={"type": "json_object"}`).
JSON mode does not enforce a schema, so the schema is written into the
leading system message and the reply is validated locally like every other
provider's.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from charactergen.adapters.base import HTTPProviderClient, Message, ProviderClient, extract_json
from charactergen.config import OPENAI_API_URL, ProviderConfig
from charactergen.exceptions import ResponseFormatError
from charactergen.validation import Schema

logger = logging.getLogger(__name__)

JSON_INSTRUCTIONS = "Respond with a single JSON object and nothing else."
SCHEMA_INSTRUCTIONS = "Respond with a single JSON object that matches this JSON schema:"


class OpenAIAdapter(HTTPProviderClient):
    """
    Adapter for OpenAI chat models (e.g., gpt-4, gpt-4o).
    """

    name = "openai"
    default_endpoint = OPENAI_API_URL

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def build_body(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
    ) -> Dict[str, Any]:
        system_parts = [system_prompt] if system_prompt else []
        turns = []
        for message in messages:
            if message.get("role") == "system":
                system_parts.append(message["content"])
            else:
                turns.append({"role": message["role"], "content": message["content"]})

        if schema is not None:
            system_parts.append(f"{SCHEMA_INSTRUCTIONS}\n{json.dumps(schema.to_json_schema(), indent=2)}")
        else:
            system_parts.append(JSON_INSTRUCTIONS)

        return {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "system", "content": "\n\n".join(system_parts)}] + turns,
            "response_format": {"type": "json_object"},
        }

    def _send(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        data = self._post(self.build_body(messages, system_prompt, schema))

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ResponseFormatError("invalid JSON response") from e

        logger.debug(f"[OpenAIAdapter] finish_reason={data['choices'][0].get('finish_reason')}")
        return extract_json(content)


# ────── Adapter Export ──────
def get_adapter(config: ProviderConfig, **options) -> ProviderClient:
    """
    Factory method used by the provider registry.
    """
    return OpenAIAdapter(config, **options)
