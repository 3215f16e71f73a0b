# charactergen/adapters/anthropic_adapter.py

"""
Anthropic Adapter for the character generation service.

Talks to the Anthropic Messages API over `httpx`.

Structured output uses forced tool use: the response schema becomes the
`input_schema` of a single tool, `tool_choice` forces the model to call it,
and the tool call's `input` is the response payload. Without a schema the
text blocks are joined and parsed as JSON.

System-role messages are folded into the top-level `system` field, since the
API only accepts `user` and `assistant` turns.
"""

import logging
from typing import Any, Dict, List, Optional

from charactergen.adapters.base import HTTPProviderClient, Message, ProviderClient, extract_json
from charactergen.config import ANTHROPIC_API_URL, ProviderConfig
from charactergen.exceptions import ResponseFormatError
from charactergen.validation import Schema

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_TOOL_NAME = "structured_response"
DEFAULT_TOOL_DESCRIPTION = "Return the response as structured data"


class AnthropicAdapter(HTTPProviderClient):
    """
    Adapter for Anthropic Claude models.
    """

    name = "anthropic"
    default_endpoint = ANTHROPIC_API_URL

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def build_body(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Build the Messages API request body.

        Args:
            options (Dict): `tool_name` / `tool_description` for the forced tool.
        """
        system_parts = [system_prompt] if system_prompt else []
        turns = []
        for message in messages:
            if message.get("role") == "system":
                system_parts.append(message["content"])
            else:
                turns.append({"role": message["role"], "content": message["content"]})

        body: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": turns,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)

        if schema is not None:
            tool_name = options.get("tool_name") or DEFAULT_TOOL_NAME
            body["tools"] = [{
                "name": tool_name,
                "description": options.get("tool_description") or schema.description or DEFAULT_TOOL_DESCRIPTION,
                "input_schema": schema.to_json_schema(),
            }]
            body["tool_choice"] = {"type": "tool", "name": tool_name}

        return body

    def _send(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        data = self._post(self.build_body(messages, system_prompt, schema, options))

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ResponseFormatError("invalid JSON response")

        for block in blocks:
            if isinstance(block, dict) and block.get("type") == "tool_use":
                payload = block.get("input")
                if not isinstance(payload, dict):
                    raise ResponseFormatError("invalid JSON response")
                return payload

        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if schema is not None:
            logger.warning("[AnthropicAdapter] no tool_use block in structured response, parsing text")
        return extract_json(text)


# ────── Adapter Export ──────
def get_adapter(config: ProviderConfig, **options) -> ProviderClient:
    """
    Factory method used by the provider registry.
    """
    return AnthropicAdapter(config, **options)
