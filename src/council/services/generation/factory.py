"""Generation backend selection."""

from __future__ import annotations

import logging

from council.config import CouncilConfig, GenerationBackend
from council.services.generation.llm_client import DeterministicCouncilLLMClient, LLMClient

logger = logging.getLogger(__name__)


def build_generation_client(config: CouncilConfig) -> LLMClient:
    """Build the text-generation client selected by configuration.

    Args:
        config: Loaded council configuration.

    Returns:
        An LLMClient implementation instance.

    Raises:
        ValueError: If the anthropic backend is selected but ANTHROPIC_API_KEY is unset.
    """
    if config.generation_backend is GenerationBackend.ANTHROPIC:
        from council.services.generation.anthropic_client import AnthropicLLMClient

        client = AnthropicLLMClient(model=config.anthropic_model)
        logger.info("Generation backend: anthropic (model=%s)", client.model)
        return client

    logger.info("Generation backend: deterministic")
    return DeterministicCouncilLLMClient()
