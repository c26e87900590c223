"""
Response Types
==============

The response object returned for every turn, plus coercion from the
loose shapes topic hooks and cross-topic handlers are allowed to return.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional


class ResponseType(Enum):
    """How a response was produced."""
    TOPIC = "topic-response"
    CROSS_TOPIC = "cross-topic"
    BLENDED = "blended"
    AI = "ai-response"
    ACTION = "action"
    CLARIFICATION = "clarification"
    FOLLOW_UP = "follow-up"
    EMOTIONAL_FALLBACK = "emotional-fallback"
    CLARIFICATION_FALLBACK = "clarification-fallback"
    SHORT_INPUT_FALLBACK = "short-input-fallback"
    GENERIC_FALLBACK = "generic-fallback"
    PROCESSING_ERROR = "processing-error"


TOPIC_BASED_TYPES = {
    ResponseType.TOPIC.value,
    ResponseType.CROSS_TOPIC.value,
    ResponseType.BLENDED.value,
    ResponseType.CLARIFICATION.value,
    ResponseType.FOLLOW_UP.value,
}


@dataclass
class Response:
    """A single agent reply."""
    text: str
    topic: str = "general"
    solutions: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    exit: bool = False

    @property
    def type(self) -> Optional[str]:
        return self.metadata.get('type')

    @property
    def sentiment(self) -> float:
        return float(self.metadata.get('sentiment', 0.0) or 0.0)

    @property
    def is_topic_based(self) -> bool:
        return self.type in TOPIC_BASED_TYPES

    def tagged(self, response_type: ResponseType, **metadata) -> "Response":
        """Return a copy with the given type and extra metadata."""
        merged = dict(self.metadata)
        merged.update(metadata)
        merged['type'] = response_type.value
        return Response(
            text=self.text,
            topic=self.topic,
            solutions=list(self.solutions),
            metadata=merged,
            exit=self.exit,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'response': self.text,
            'topic': self.topic,
            'solutions': self.solutions,
            'metadata': self.metadata,
            'exit': self.exit,
        }


def coerce_response(value: Any, default_topic: str = "general") -> Optional[Response]:
    """
    Normalize a hook result into a Response.

    Accepts a Response, a plain string, or a mapping with ``response``
    (or ``text``) plus optional ``topic``, ``solutions`` and ``metadata``.
    Returns None for None or empty results.
    """
    if value is None:
        return None

    if isinstance(value, Response):
        return value

    if isinstance(value, str):
        return Response(text=value, topic=default_topic) if value.strip() else None

    if isinstance(value, dict):
        text = value.get('response', value.get('text'))
        if not text:
            return None
        metadata = dict(value.get('metadata') or {})
        if value.get('immediate'):
            metadata['immediate'] = True
        return Response(
            text=str(text),
            topic=value.get('topic') or default_topic,
            solutions=list(value.get('solutions') or []),
            metadata=metadata,
            exit=bool(value.get('exit', False)),
        )

    raise TypeError(f"Cannot build a response from {type(value).__name__}")
