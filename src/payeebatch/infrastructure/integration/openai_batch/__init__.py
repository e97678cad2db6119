"""OpenAI Batch API adapter."""

from payeebatch.infrastructure.integration.openai_batch.provider import OpenAIBatchProvider

__all__ = ["OpenAIBatchProvider"]
