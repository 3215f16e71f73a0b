# charactergen/schemas.py

"""
Defines Pydantic data models for request validation in the character
generation API.

These models:
1. Check that incoming requests have the expected shape and types
2. Drive FastAPI's OpenAPI schema generation
3. Enforce size limits at the API edge, before anything reaches a provider

Message-level checks (non-empty content, roles) stay in the provider clients
so library callers get the same behaviour as HTTP callers.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from charactergen.config import settings


class ChatRequest(BaseModel):
    """
    Body of a /v1/chat request.

    Fields:
        messages (List[Dict[str, Any]]): Chat history, e.g.
            [{"role": "user", "content": "Suggest equipment for a bard"}]
        system_prompt (str | None): Optional system instructions
        schema (Dict | None): Optional response schema (JSON Schema subset)
    """
    model_config = ConfigDict(populate_by_name=True)

    messages: List[Dict[str, Any]]
    system_prompt: Optional[str] = None
    response_schema: Optional[Dict[str, Any]] = Field(default=None, alias="schema")

    @model_validator(mode="after")
    def check_payload_limits(self):
        """
        Rejects requests whose total message content exceeds `max_input_chars`.
        """
        total_chars = sum(len(str(m.get("content", ""))) for m in self.messages)
        if total_chars > settings.max_input_chars:
            raise ValueError(
                f"Total message content too large ({total_chars} chars); "
                f"max is {settings.max_input_chars}"
            )
        return self


class GenerateRequest(BaseModel):
    """
    Body of a /v1/generate/{request_type} request: the template context.
    """
    context: Dict[str, Any] = Field(
        default_factory=dict,
        examples=[{"name": "Thalia Stormwind", "class": "Bard", "race": "Half-Elf", "alignment": "Chaotic Good"}],
    )


class CharacterContext(BaseModel):
    """
    A character as seen by the prompt templates.

    `class` is a Python keyword, so the field is `class_` with alias "class".
    Extra keys are kept and passed to the templates unchanged.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = Field(..., min_length=1)
    class_: str = Field(..., alias="class", min_length=1)
    race: Optional[str] = None
    alignment: Optional[str] = None
    level: int = Field(default=1, ge=1, le=20)
    background: Optional[str] = None
    personality_traits: Optional[List[str]] = None

    def to_context(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatResponse(BaseModel):
    provider: str
    response: Dict[str, Any]
