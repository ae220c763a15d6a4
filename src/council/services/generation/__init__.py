"""Text-generation collaborators for council turns.

LLMClient is the provider-agnostic interface; build_generation_client picks
the backend from configuration.
"""

from council.services.generation.factory import build_generation_client
from council.services.generation.llm_client import DeterministicCouncilLLMClient, LLMClient

__all__ = ["DeterministicCouncilLLMClient", "LLMClient", "build_generation_client"]
