"""
Conversation State Management
=============================

Per-session conversational state: the bounded most-recent-first stack of
active topics, a smoothed emotional-state estimate, the conversation
phase and the user profile. Only the turn orchestrator mutates it, once
per turn, after a response has been produced.
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging

from .response import Response

logger = logging.getLogger(__name__)

NON_TOPIC_NAMES = {"general", "system", "error", "emotional-support", "ai"}


class ConversationPhase(Enum):
    """Conversation phases; transitions only move forward."""
    INIT = "init"
    EXPLORE = "explore"
    DEEP_DIVE = "deep-dive"
    RESOLVE = "resolve"
    CLOSE = "close"


@dataclass
class DialogTurn:
    """Single turn in the conversation history."""
    user_input: str
    bot_response: str
    topic: str = "general"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ConversationContext:
    """State visible to topic hooks and cross-topic handlers."""
    active_topics: List[str] = field(default_factory=list)
    emotional_state: float = 0.0
    phase: ConversationPhase = ConversationPhase.INIT
    user_profile: Dict[str, Any] = field(default_factory=dict)
    last_response: Optional[Response] = None
    history: List[DialogTurn] = field(default_factory=list)
    # reply the user was asked to pick a part of
    pending_clarification: Optional[Response] = None

    def is_active(self, topic_name: str) -> bool:
        return topic_name in self.active_topics

    def to_dict(self) -> Dict[str, Any]:
        return {
            'active_topics': list(self.active_topics),
            'emotional_state': self.emotional_state,
            'phase': self.phase.value,
            'user_profile': dict(self.user_profile),
            'turns': len(self.history),
            'awaiting_clarification': self.pending_clarification is not None,
        }


class ContextManager:
    """Applies per-turn updates to a ConversationContext."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.max_topics_active = self.config.get('max_topics_active', 3)
        self.max_history = self.config.get('max_history', 20)
        self.smoothing = self.config.get('sentiment_smoothing', 0.4)
        self.explore_input_words = self.config.get('explore_input_words', 8)
        self.explore_response_words = self.config.get('explore_response_words', 15)
        self.resolve_blend_ratio = self.config.get('resolve_blend_ratio', 0.6)

        self.context = ConversationContext()

    @property
    def phase(self) -> ConversationPhase:
        return self.context.phase

    def activate_topic(self, topic_name: str):
        """Move a topic (or each part of a blended "a+b" name) to the front of the stack."""
        parts = [p for p in topic_name.split('+') if p]
        # reversed so the first part ends up in front
        for part in reversed(parts):
            if part in self.context.active_topics:
                self.context.active_topics.remove(part)
            self.context.active_topics.insert(0, part)
        del self.context.active_topics[self.max_topics_active:]

    def update(self, user_input: str, response: Response, recent_sentiment: float):
        """Apply one turn's effects: active topics, emotional state, phase, history."""
        if response.is_topic_based and response.topic not in NON_TOPIC_NAMES:
            self.activate_topic(response.topic)

        previous = self.context.emotional_state
        smoothed = previous * (1 - self.smoothing) + recent_sentiment * self.smoothing
        self.context.emotional_state = max(-1.0, min(1.0, smoothed))

        self._advance_phase(user_input, response)

        self.context.history.append(DialogTurn(
            user_input=user_input,
            bot_response=response.text,
            topic=response.topic,
        ))
        del self.context.history[:-self.max_history]
        self.context.last_response = response

    def _advance_phase(self, user_input: str, response: Response):
        phase = self.context.phase

        if phase == ConversationPhase.INIT:
            if (len(user_input.split()) > self.explore_input_words
                    or len(response.text.split()) > self.explore_response_words):
                self._set_phase(ConversationPhase.EXPLORE)
        elif phase == ConversationPhase.EXPLORE:
            if self.context.active_topics:
                self._set_phase(ConversationPhase.DEEP_DIVE)
        elif phase == ConversationPhase.DEEP_DIVE:
            blend_ratio = response.metadata.get('blend_ratio')
            if blend_ratio is not None and blend_ratio > self.resolve_blend_ratio:
                self._set_phase(ConversationPhase.RESOLVE)

    def _set_phase(self, phase: ConversationPhase):
        logger.info(f"Conversation phase {self.context.phase.value} -> {phase.value}")
        self.context.phase = phase

    def close(self):
        """Enter the terminal phase; only reachable through the exit action."""
        if self.context.phase != ConversationPhase.CLOSE:
            self._set_phase(ConversationPhase.CLOSE)

    def reset(self):
        """Forget active topics, history and any pending question; phase and profile are kept."""
        self.context.active_topics.clear()
        self.context.history.clear()
        self.context.last_response = None
        self.context.pending_clarification = None

    def merge_profile(self, updates: Dict[str, Any]):
        if updates:
            self.context.user_profile.update(updates)

    def detect_threads(self) -> List[Dict[str, Any]]:
        """Runs of two or more consecutive turns on the same topic."""
        threads = []
        current = None

        for turn in self.context.history:
            if turn.topic in NON_TOPIC_NAMES:
                current = None
                continue
            if current and current['topic'] == turn.topic:
                current['turns'] += 1
                current['last_input'] = turn.user_input
            else:
                current = {'topic': turn.topic, 'turns': 1, 'last_input': turn.user_input}
                threads.append(current)

        return [t for t in threads if t['turns'] >= 2]

    def get_relevant_context(self) -> Dict[str, Any]:
        return {
            'active_topics': list(self.context.active_topics),
            'emotional_state': self.context.emotional_state,
            'phase': self.context.phase.value,
            'threads': self.detect_threads(),
        }
