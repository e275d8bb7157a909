"""Clients for the hosted AI service."""

from .ai_client import AIMalformedResponse, AIServiceClient, AIServiceError

__all__ = ["AIMalformedResponse", "AIServiceClient", "AIServiceError"]
