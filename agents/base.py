"""Shared model construction and prompt context for the Herald agents."""

import logging
from dataclasses import dataclass, field

from openai import AsyncOpenAI
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.profiles.openai import OpenAIModelProfile
from pydantic_ai.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)


@dataclass
class AgentContext:
    """Runtime context passed to every agent as `deps`.

    Attributes:
        output_language: Language the model must answer in
        expert_fields: Domains the audience works in
    """

    output_language: str = "English"
    expert_fields: list[str] = field(default_factory=lambda: ["Technology"])

    @property
    def fields(self) -> str:
        return ", ".join(self.expert_fields)


def _parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[7:]  # Remove "openai:" prefix
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def create_model(model_str: str):
    """Create the appropriate model based on the model string.

    Supports:
    - Local OpenAI-compatible servers: 'openai:{model_name}@http://127.0.0.1:8080/v1'
    - Remote models: 'google-gla:gemini-3-flash-preview'

    Returns:
        PydanticAI model instance or model string
    """
    parsed = _parse_local_model(model_str)
    if parsed:
        model_name, base_url = parsed
        logger.info("Using local model | model=%s base_url=%s", model_name, base_url)
        # Local servers don't need authentication - use placeholder
        client = AsyncOpenAI(base_url=base_url, api_key="local-model")
        # Most local servers don't support response_format
        profile = OpenAIModelProfile(supports_json_object_output=False)
        return OpenAIModel(
            model_name=model_name,
            provider=OpenAIProvider(openai_client=client),
            profile=profile,
        )
    return model_str


def log_usage(message: str, label: object, result) -> None:
    usage = result.usage()
    logger.debug(
        "%s | item=%s requests=%d tokens=%s",
        message, label, usage.requests, usage.total_tokens or 0,
    )
