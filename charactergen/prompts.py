# charactergen/prompts.py

"""
Prompt templates: loading, caching and rendering.

Templates are YAML files with `system_prompt`, `user_prompt`, an optional
embedded `schema` describing the expected structured response, and optional
`provider_overrides` (per-provider formatting hints such as the Anthropic tool
name). They are parsed once into frozen `PromptTemplate` objects.

Lookup order for `(request_type, provider)` under the templates root:

    <env>/<provider>/<request_type>.yml
    <provider>/<request_type>.yml
    <env>/default/<request_type>.yml
    default/<request_type>.yml

Rendering is Mustache (via `pystache`) with HTML escaping turned off:
`{{key}}` substitutes a context value (missing keys render as ""), and
`{{#key}}...{{.}}...{{/key}}` repeats a block for each element of a list.
"""

import logging
import re
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pystache
import yaml
from pydantic import BaseModel, ConfigDict, Field

from charactergen.exceptions import SchemaError, TemplateNotFoundError, ValidationError
from charactergen.validation import Schema, validate_schema_shape

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("system_prompt", "user_prompt")
DEFAULT_PROVIDER_DIR = "default"
TEMPLATE_EXTENSION = ".yml"

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Prompts are plain text, never HTML.
_RENDERER = pystache.Renderer(escape=lambda u: u, missing_tags="ignore")


class PromptTemplate(BaseModel):
    """A named prompt definition. Immutable once loaded."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    request_type: str
    system_prompt: str
    user_prompt: str
    response_schema: Optional[Schema] = Field(default=None, alias="schema")
    provider_overrides: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    source: Optional[str] = None

    @classmethod
    def from_mapping(cls, request_type: str, data: Any, source: Optional[str] = None) -> "PromptTemplate":
        """
        Build a template from parsed YAML.

        Raises:
            ValidationError: If required keys are missing or empty, or the
                embedded schema is malformed.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Template {request_type} must be a mapping")

        missing = [key for key in REQUIRED_KEYS if key not in data]
        if missing:
            raise ValidationError(f"Template missing required keys: {', '.join(missing)}")

        for key in REQUIRED_KEYS:
            if not isinstance(data[key], str) or not data[key].strip():
                raise ValidationError(f"Template {key} must be a non-empty string")

        schema = None
        if data.get("schema") is not None:
            try:
                schema = validate_schema_shape(data["schema"])
            except SchemaError as e:
                raise ValidationError(f"Template {request_type} has a malformed schema: {e.reason}") from e

        overrides = data.get("provider_overrides") or {}
        if not isinstance(overrides, Mapping) or not all(isinstance(v, Mapping) for v in overrides.values()):
            raise ValidationError(f"Template {request_type} provider_overrides must map provider names to mappings")

        return cls(
            request_type=request_type,
            system_prompt=data["system_prompt"],
            user_prompt=data["user_prompt"],
            response_schema=schema,
            provider_overrides={str(k): dict(v) for k, v in overrides.items()},
            source=source,
        )

    def overrides_for(self, provider: str) -> Dict[str, Any]:
        return dict(self.provider_overrides.get(provider, {}))


class RenderedPrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_prompt: str
    user_prompt: str


def render_text(text: str, context: Optional[Mapping] = None) -> str:
    """Render one Mustache string against `context`."""
    return _RENDERER.render(text, dict(context or {}))


def render(template: PromptTemplate, context: Optional[Mapping] = None) -> RenderedPrompt:
    """
    Render a template's system and user prompts.

    Args:
        template (PromptTemplate): The loaded template.
        context (Mapping): Values for `{{key}}` placeholders and sections.

    Returns:
        RenderedPrompt: Concrete prompt strings.
    """
    return RenderedPrompt(
        system_prompt=render_text(template.system_prompt, context),
        user_prompt=render_text(template.user_prompt, context),
    )


class TemplateStore:
    """
    Resolves, parses and caches prompt templates from a directory tree.

    The cache key includes the resolved file's path and modification time,
    so editing a template takes effect on the next load without a restart.
    Cached templates are immutable; a reload stores a new object.
    """

    def __init__(self, root: Path, environment: str = "development"):
        self.root = Path(root)
        self.environment = environment
        self._cache: Dict[Tuple[str, str, Tuple[str, int]], PromptTemplate] = {}
        self._lock = threading.Lock()

    def candidate_paths(self, request_type: str, provider: str) -> List[Path]:
        filename = f"{request_type}{TEMPLATE_EXTENSION}"
        return [
            self.root / self.environment / provider / filename,
            self.root / provider / filename,
            self.root / self.environment / DEFAULT_PROVIDER_DIR / filename,
            self.root / DEFAULT_PROVIDER_DIR / filename,
        ]

    def resolve(self, request_type: str, provider: str) -> Path:
        """
        Return the first existing template file for the pair.

        Raises:
            TemplateNotFoundError: If no candidate exists.
        """
        if not _NAME_PATTERN.match(request_type) or not _NAME_PATTERN.match(provider):
            raise TemplateNotFoundError(f"No template found for {request_type!r} / {provider!r}")

        candidates = self.candidate_paths(request_type, provider)
        for path in candidates:
            if path.is_file():
                return path

        tried = ", ".join(str(p.relative_to(self.root)) for p in candidates)
        raise TemplateNotFoundError(f"No template found for {request_type} (tried: {tried})")

    def load(self, request_type: str, provider: str) -> PromptTemplate:
        path = self.resolve(request_type, provider)
        key = (request_type, provider, self._fingerprint(path))

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        template = self._read(request_type, provider, path)

        with self._lock:
            for stale in [k for k in self._cache if k[:2] == key[:2] and k != key]:
                del self._cache[stale]
            self._cache[key] = template
        return template

    def generate(
        self,
        request_type: str,
        provider: str,
        context: Optional[Mapping] = None,
    ) -> Tuple[PromptTemplate, RenderedPrompt]:
        """Load the template for `(request_type, provider)` and render it."""
        template = self.load(request_type, provider)
        return template, render(template, context)

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    # ─── Internals ─────────────────────────────────────────────────────────────

    @staticmethod
    def _fingerprint(path: Path) -> Tuple[str, int]:
        try:
            return str(path), path.stat().st_mtime_ns
        except FileNotFoundError as e:
            raise TemplateNotFoundError(f"Template disappeared: {path}") from e

    def _read(self, request_type: str, provider: str, path: Path) -> PromptTemplate:
        if path.parent.name == DEFAULT_PROVIDER_DIR and provider != DEFAULT_PROVIDER_DIR:
            logger.info(f"[TemplateStore] no {provider} template for {request_type}, falling back to {path.relative_to(self.root)}")

        try:
            with path.open(encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except FileNotFoundError as e:
            raise TemplateNotFoundError(f"Template disappeared: {path}") from e
        except yaml.YAMLError as e:
            raise ValidationError(f"Template {path.name} is not valid YAML") from e

        template = PromptTemplate.from_mapping(request_type, data, source=str(path))
        logger.debug(f"[TemplateStore] loaded {request_type} for {provider} from {path}")
        return template
