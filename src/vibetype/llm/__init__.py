from __future__ import annotations

from .openai_client import OpenAIStyleClient, RequestMetadata

__all__ = ["OpenAIStyleClient", "RequestMetadata"]
