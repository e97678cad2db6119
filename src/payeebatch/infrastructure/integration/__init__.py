"""Adapters for the remote classification provider."""

from payeebatch.infrastructure.integration.openai_batch import OpenAIBatchProvider
from payeebatch.infrastructure.integration.unconfigured_provider import UnconfiguredProvider

__all__ = ["OpenAIBatchProvider", "UnconfiguredProvider"]
