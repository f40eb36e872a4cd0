"""
SDK for the portfolio assistant.

Provides programmatic access for the application's request handlers.
"""

from .assistant import PortfolioAssistant
from .llm_client import MalformedResponseError, ModelClient, UpstreamError

__all__ = ["PortfolioAssistant", "ModelClient", "UpstreamError", "MalformedResponseError"]
