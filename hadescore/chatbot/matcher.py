"""
Topic Matching
==============

Scores user input against every registered topic.

Scoring is additive per topic:

- each keyword (or its stem) found in the lower-cased input adds
  ``keyword_weight``
- the first matching regex pattern adds 2.0
- being in the active topic stack adds 1.0
- a declared ``sentiment_bias`` adds ``0.5 * (1 - |bias - emotional_state|)``

Before any of that, cross-topic handlers of the active topics get a
chance to claim the turn outright with a fixed score of 3.0.
"""

from dataclasses import dataclass
from typing import Any, List, Optional
import logging
import re

from .dialog_state import ConversationContext
from .response import Response, ResponseType, coerce_response
from .text_analyzer import TextAnalyzer
from .topic import Pattern, Topic, TopicRegistry

logger = logging.getLogger(__name__)

PATTERN_BONUS = 2.0
CONTEXT_BONUS = 1.0
SENTIMENT_WEIGHT = 0.5
CROSS_TOPIC_SCORE = 3.0
MIN_STEM_LENGTH = 4


class MatchError(Exception):
    """Raised when scoring a single topic fails."""

    def __init__(self, message: str, topic_name: Optional[str] = None):
        super().__init__(message)
        self.topic_name = topic_name


@dataclass
class MatchResult:
    """Outcome of scoring input against a topic. Produced fresh per turn."""
    score: float = 0.0
    topic: Optional[Topic] = None
    pattern: Optional[Pattern] = None
    match: Optional["re.Match[str]"] = None
    forced_response: Optional[Response] = None

    @property
    def topic_name(self) -> Optional[str]:
        return self.topic.name if self.topic else None

    def is_confident(self, min_score: float) -> bool:
        return self.topic is not None and self.score >= min_score

    def to_dict(self):
        return {
            'score': self.score,
            'topic': self.topic_name,
            'pattern': self.pattern.source if self.pattern else None,
            'forced': self.forced_response is not None,
        }


class TopicMatcher:
    """Scores input against the topics of a registry."""

    def __init__(self, registry: TopicRegistry, analyzer: Optional[TextAnalyzer] = None,
                 keyword_weight: float = 0.75, min_match_score: float = 0.5):
        self.registry = registry
        self.analyzer = analyzer
        self.keyword_weight = keyword_weight
        self.min_match_score = min_match_score

        self._stems = {}
        if analyzer is not None:
            for topic in registry:
                for keyword in topic.keywords:
                    self._stems[keyword.lower()] = analyzer.stem(keyword.lower())

        self.metrics = {
            'cross_topic_hits': 0,
            'match_errors': 0,
        }

    def check_cross_topics(self, input_text: str, context: ConversationContext) -> Optional[MatchResult]:
        """
        First cross-topic handler of an active topic that returns a response.

        Iteration order is the active-topic order, then each topic's
        handler registration order. Handlers targeting unknown topics or
        raising are skipped.
        """
        for active_name in list(context.active_topics):
            source = self.registry.get(active_name)
            if source is None:
                continue

            for target_name, handler in source.cross_topic_handlers.items():
                target = self.registry.get(target_name)
                if target is None:
                    continue
                try:
                    response = coerce_response(handler(input_text, context), default_topic=target_name)
                except Exception as e:
                    logger.warning(f"Cross-topic handler {active_name} -> {target_name} failed: {e}")
                    continue

                if response is not None:
                    self.metrics['cross_topic_hits'] += 1
                    forced = response.tagged(ResponseType.CROSS_TOPIC, source=active_name)
                    forced.topic = target_name
                    return MatchResult(score=CROSS_TOPIC_SCORE, topic=target, forced_response=forced)

        return None

    def score(self, input_text: str, topic: Topic, context: ConversationContext) -> MatchResult:
        """
        Score one topic; a ``match`` hook replaces the default algorithm.

        Raises:
            MatchError: if the topic's hook or patterns fail
        """
        try:
            if topic.match is not None:
                return self._coerce_hook_result(topic.match(input_text, context), topic)
            return self._default_score(input_text, topic, context)
        except MatchError:
            raise
        except Exception as e:
            raise MatchError(f"Scoring topic '{topic.name}' failed: {e}", topic_name=topic.name) from e

    def _default_score(self, input_text: str, topic: Topic, context: ConversationContext) -> MatchResult:
        lower = input_text.lower()
        score = 0.0

        for keyword in topic.keywords:
            keyword_lower = keyword.lower()
            stem = self._stems.get(keyword_lower)
            if keyword_lower in lower or (stem and len(stem) >= MIN_STEM_LENGTH and stem in lower):
                score += self.keyword_weight

        matched_pattern = None
        regex_match = None
        for pattern in topic.patterns:
            regex_match = pattern.regex.search(input_text)
            if regex_match:
                matched_pattern = pattern
                score += PATTERN_BONUS
                break

        if topic.name in context.active_topics:
            score += CONTEXT_BONUS

        if topic.sentiment_bias is not None:
            alignment = 1 - abs(topic.sentiment_bias - context.emotional_state)
            score += alignment * SENTIMENT_WEIGHT

        return MatchResult(
            score=max(0.0, score),
            topic=topic,
            pattern=matched_pattern,
            match=regex_match if matched_pattern else None,
        )

    @staticmethod
    def _coerce_hook_result(result: Any, topic: Topic) -> MatchResult:
        if isinstance(result, MatchResult):
            if result.topic is None:
                result.topic = topic
            result.score = max(0.0, float(result.score))
            return result
        if result is None:
            return MatchResult(score=0.0, topic=topic)
        return MatchResult(score=max(0.0, float(result)), topic=topic)

    def rank(self, input_text: str, context: ConversationContext) -> List[MatchResult]:
        """
        All topics scored, best first.

        The sort is stable, so equal scores keep registry order. A topic
        whose scoring fails counts as 0.
        """
        results = []
        for topic in self.registry:
            try:
                results.append(self.score(input_text, topic, context))
            except MatchError as e:
                self.metrics['match_errors'] += 1
                logger.warning(str(e))
                results.append(MatchResult(score=0.0, topic=topic))

        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def find_best_match(self, input_text: str, context: ConversationContext) -> MatchResult:
        """Cross-topic override if one fires, else the highest-scoring topic."""
        forced = self.check_cross_topics(input_text, context)
        if forced is not None:
            return forced

        ranked = self.rank(input_text, context)
        if not ranked:
            return MatchResult()
        return ranked[0]
