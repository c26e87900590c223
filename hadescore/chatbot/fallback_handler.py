"""
Contextual Fallback Handler
===========================

Replies used when no topic matched confidently and no AI provider
answered. The input is classified first, then a phrase is uniformly
sampled from that class's fixed bank using the injected random source:

- negative sentiment   -> emotional support
- contains "?"         -> clarification
- fewer than 4 tokens  -> "say more"
- anything else        -> generic
"""

from typing import Dict, Any, List, Optional
from enum import Enum
import logging
import random

from .response import Response, ResponseType
from .text_analyzer import TextAnalysis

logger = logging.getLogger(__name__)


class FallbackType(Enum):
    """Fallback classes."""
    EMOTIONAL_SUPPORT = "emotional-support"
    CLARIFICATION = "clarification"
    SHORT_INPUT = "short-input"
    GENERIC = "generic"
    PROCESSING_ERROR = "processing-error"


PROCESSING_ERROR_TEXT = "I'm having trouble processing that. Could you try again?"


class FallbackHandler:
    """Selects contextual fallback replies."""

    def __init__(self, rng: Optional[random.Random] = None, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.rng = rng or random.Random()
        self.emotional_threshold = self.config.get('emotional_fallback_threshold', -0.3)
        self.short_input_tokens = self.config.get('short_input_tokens', 4)

        self.phrase_banks: Dict[FallbackType, List[str]] = {
            FallbackType.EMOTIONAL_SUPPORT: [
                "That sounds difficult. Would you like to talk more about it?",
                "I can hear this is important to you. What should I understand better?",
                "This seems to be affecting you deeply. What would help right now?",
            ],
            FallbackType.CLARIFICATION: [
                "That's an interesting question. Let me think about that...",
                "Good question. Could you tell me a bit more about what you're looking for?",
                "I want to get this right. Which part of that matters most to you?",
            ],
            FallbackType.SHORT_INPUT: [
                "Could you say more about that?",
                "Can you tell me a little more?",
                "I'm listening. What else is on your mind?",
            ],
            FallbackType.GENERIC: [
                "I'd like to understand better. Can you explain in different words?",
                "Help me understand what's most important about this.",
                "Let's focus on this. What aspect matters most to you?",
            ],
        }

        # response topic and type per class
        self._labels = {
            FallbackType.EMOTIONAL_SUPPORT: ("emotional-support", ResponseType.EMOTIONAL_FALLBACK),
            FallbackType.CLARIFICATION: ("general", ResponseType.CLARIFICATION_FALLBACK),
            FallbackType.SHORT_INPUT: ("general", ResponseType.SHORT_INPUT_FALLBACK),
            FallbackType.GENERIC: ("general", ResponseType.GENERIC_FALLBACK),
        }

        self.metrics = {fallback_type.value: 0 for fallback_type in FallbackType}

    def classify(self, input_text: str, analysis: Optional[TextAnalysis] = None) -> FallbackType:
        sentiment = analysis.sentiment if analysis else 0.0
        tokens = analysis.tokens if analysis and analysis.tokens else input_text.split()

        if sentiment < self.emotional_threshold:
            return FallbackType.EMOTIONAL_SUPPORT
        if '?' in input_text:
            return FallbackType.CLARIFICATION
        if len(tokens) < self.short_input_tokens:
            return FallbackType.SHORT_INPUT
        return FallbackType.GENERIC

    def respond(self, input_text: str, analysis: Optional[TextAnalysis] = None) -> Response:
        """Classify the input and sample a phrase from the matching bank."""
        return self.respond_with(self.classify(input_text, analysis), analysis)

    def respond_with(self, fallback_type: FallbackType, analysis: Optional[TextAnalysis] = None) -> Response:
        if fallback_type == FallbackType.PROCESSING_ERROR:
            return self.error_response()

        topic, response_type = self._labels[fallback_type]
        self.metrics[fallback_type.value] += 1
        return Response(
            text=self.rng.choice(self.phrase_banks[fallback_type]),
            topic=topic,
            metadata={
                'type': response_type.value,
                'fallback_type': fallback_type.value,
                'sentiment': analysis.sentiment if analysis else 0.0,
            },
        )

    def default_response(self) -> Response:
        """Generic fallback, used for invalid input."""
        return self.respond_with(FallbackType.GENERIC)

    def error_response(self) -> Response:
        self.metrics[FallbackType.PROCESSING_ERROR.value] += 1
        return Response(
            text=PROCESSING_ERROR_TEXT,
            topic="error",
            metadata={'type': ResponseType.PROCESSING_ERROR.value},
        )

    def get_metrics(self) -> Dict[str, Any]:
        return dict(self.metrics)
