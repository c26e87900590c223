"""
Response Blending
=================

Merges two competing topic replies when neither topic clearly wins.
This is best-effort prose fusion: sentences from each side are kept in
proportion to the blend ratio and interleaved, primary first. It makes
no attempt at semantic combination.
"""

from math import ceil
from typing import Dict, Any, List, Optional, Tuple
import logging
import re

from .dialog_state import ConversationContext
from .response import Response, ResponseType
from .topic import TopicRegistry

logger = logging.getLogger(__name__)

SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+|\n+')


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_BOUNDARY.split(text) if s and s.strip()]


class ResponseBlender:
    """Priority- and context-weighted merge of two replies."""

    def __init__(self, registry: TopicRegistry, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.registry = registry
        self.context_shift = self.config.get('context_shift', 0.2)
        self.min_ratio = self.config.get('min_ratio', 0.2)
        self.max_ratio = self.config.get('max_ratio', 0.8)
        self.skip_below = self.config.get('skip_below', 0.3)

        self.metrics = {'blended': 0, 'skipped': 0}

    def _priority(self, topic_name: str) -> float:
        topic = self.registry.get(topic_name)
        return topic.priority if topic else 1.0

    def compute_ratio(self, primary: Response, secondary: Response,
                      context: ConversationContext) -> Tuple[float, float]:
        """Return (unclamped, clamped) share of the primary reply."""
        p = self._priority(primary.topic)
        s = self._priority(secondary.topic)
        ratio = p / (p + s) if (p + s) > 0 else 0.5

        primary_active = primary.topic in context.active_topics
        secondary_active = secondary.topic in context.active_topics
        if primary_active and not secondary_active:
            ratio += self.context_shift
        elif secondary_active and not primary_active:
            ratio -= self.context_shift

        return ratio, max(self.min_ratio, min(self.max_ratio, ratio))

    def blend(self, primary: Response, secondary: Response, context: ConversationContext) -> Response:
        """
        Merge two replies; returns ``primary`` unchanged when its share
        would fall below the skip threshold before clamping.
        """
        raw_ratio, ratio = self.compute_ratio(primary, secondary, context)
        if raw_ratio < self.skip_below:
            self.metrics['skipped'] += 1
            logger.debug(f"Blend skipped ({primary.topic}+{secondary.topic}, ratio {raw_ratio:.2f})")
            return primary

        text = self._interleave(primary.text, secondary.text, ratio)

        solutions = list(dict.fromkeys(primary.solutions + secondary.solutions))
        sentiment = ratio * primary.sentiment + (1 - ratio) * secondary.sentiment

        self.metrics['blended'] += 1
        return Response(
            text=text,
            topic=f"{primary.topic}+{secondary.topic}",
            solutions=solutions,
            metadata={
                'type': ResponseType.BLENDED.value,
                'blend_ratio': ratio,
                'components': [primary.topic, secondary.topic],
                'sentiment': sentiment,
            },
        )

    @staticmethod
    def _interleave(primary_text: str, secondary_text: str, ratio: float) -> str:
        a = split_sentences(primary_text)
        b = split_sentences(secondary_text)
        if not a and not b:
            return primary_text or secondary_text

        keep_a = a[:min(len(a), max(1, ceil(len(a) * 2 * ratio)))]
        keep_b = b[:min(len(b), max(1, ceil(len(b) * 2 * (1 - ratio))))]

        merged = []
        for i in range(max(len(keep_a), len(keep_b))):
            if i < len(keep_a):
                merged.append(keep_a[i])
            if i < len(keep_b):
                merged.append(keep_b[i])
        return " ".join(merged)
