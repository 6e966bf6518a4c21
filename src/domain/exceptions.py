"""
domain.exceptions - Custom exception hierarchy for the stream pipeline.

All domain-level errors inherit from DomainError so callers can catch
broad or specific exceptions as needed.
"""


class DomainError(Exception):
    """Base exception for all domain-level errors."""


class EventParseError(DomainError):
    """Raised when a firehose message cannot be parsed."""


class ClassificationError(DomainError):
    """Raised when the local zero-shot model fails."""


class EmbeddingError(DomainError):
    """Raised when an embedding provider fails."""


class TopicExtractionError(DomainError):
    """Raised when the LLM topic extraction fails."""


class StoreError(DomainError):
    """Raised when a Redis operation fails."""


class BlueskyError(DomainError):
    """Raised when a Bluesky XRPC call fails."""


class BlueskyAuthError(BlueskyError):
    """Raised when the bot cannot create a Bluesky session."""


class AnswerGenerationError(DomainError):
    """Raised when the LLM fails to write a bot answer."""
