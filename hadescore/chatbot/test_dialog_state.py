"""
Unit Tests for Conversation State
=================================

Active topic stack bounds, emotional smoothing, forward-only phase
transitions and conversation threads.
"""

import pytest

from hadescore.chatbot.dialog_state import ContextManager, ConversationPhase
from hadescore.chatbot.response import Response, ResponseType


def topic_response(topic, text="Here is an idea.", **metadata):
    return Response(text=text, topic=topic, metadata={'type': ResponseType.TOPIC.value, **metadata})


class TestActiveTopics:
    """Test the bounded most-recent-first topic stack."""

    def test_bounded_and_unique(self):
        manager = ContextManager({'max_topics_active': 3})
        for name in ['a', 'b', 'c', 'b', 'd', 'a', 'e']:
            manager.activate_topic(name)
            topics = manager.context.active_topics
            assert len(topics) <= 3
            assert len(topics) == len(set(topics))

        assert manager.context.active_topics == ['e', 'a', 'd']

    def test_reactivation_moves_to_front(self):
        manager = ContextManager()
        manager.activate_topic('a')
        manager.activate_topic('b')
        manager.activate_topic('a')
        assert manager.context.active_topics == ['a', 'b']

    def test_blended_name_activates_both_parts(self):
        manager = ContextManager()
        manager.activate_topic('c')
        manager.activate_topic('a+b')
        assert manager.context.active_topics == ['a', 'b', 'c']

    def test_only_topic_based_responses_activate(self):
        manager = ContextManager()
        manager.update("hello there", Response(text="Say more?", metadata={'type': 'generic-fallback'}), 0.0)
        manager.update("question", Response(text="AI answer", topic='ai', metadata={'type': 'ai-response'}), 0.0)
        assert manager.context.active_topics == []

        manager.update("money", topic_response('finance'), 0.0)
        assert manager.context.active_topics == ['finance']


class TestEmotionalState:
    """Test exponential smoothing of sentiment."""

    def test_smoothing(self):
        manager = ContextManager({'sentiment_smoothing': 0.5})
        manager.update("x", topic_response('t'), -1.0)
        assert manager.context.emotional_state == pytest.approx(-0.5)
        manager.update("x", topic_response('t'), -1.0)
        assert manager.context.emotional_state == pytest.approx(-0.75)

    def test_clamped(self):
        manager = ContextManager({'sentiment_smoothing': 1.0})
        manager.update("x", topic_response('t'), 3.0)
        assert manager.context.emotional_state == 1.0


class TestPhases:
    """Test forward-only phase transitions."""

    def test_full_progression(self):
        manager = ContextManager()
        assert manager.phase == ConversationPhase.INIT

        manager.update("short", Response(text="Could you say more?", metadata={'type': 'short-input-fallback'}), 0.0)
        assert manager.phase == ConversationPhase.INIT

        manager.update("I have been struggling to keep a budget for many months", topic_response('finance'), 0.0)
        assert manager.phase == ConversationPhase.EXPLORE

        manager.update("more", topic_response('finance'), 0.0)
        assert manager.phase == ConversationPhase.DEEP_DIVE

        manager.update("both", topic_response('a+b', blend_ratio=0.5), 0.0)
        assert manager.phase == ConversationPhase.DEEP_DIVE

        manager.update("both", topic_response('a+b', blend_ratio=0.7), 0.0)
        assert manager.phase == ConversationPhase.RESOLVE

        manager.update("I have been struggling to keep a budget for many months", topic_response('finance'), 0.0)
        assert manager.phase == ConversationPhase.RESOLVE

    def test_advances_one_step_per_turn(self):
        manager = ContextManager()
        manager.activate_topic('finance')
        manager.update("I have been struggling to keep a budget for many months", topic_response('finance'), 0.0)
        assert manager.phase == ConversationPhase.EXPLORE

    def test_close_only_via_explicit_call(self):
        manager = ContextManager()
        for _ in range(5):
            manager.update("goodbye goodbye goodbye goodbye goodbye goodbye goodbye goodbye goodbye",
                           topic_response('finance', blend_ratio=0.9), 0.0)
        assert manager.phase != ConversationPhase.CLOSE

        manager.close()
        assert manager.phase == ConversationPhase.CLOSE


class TestHistory:
    """Test history bounds, reset and thread detection."""

    def test_history_bounded(self):
        manager = ContextManager({'max_history': 4})
        for i in range(10):
            manager.update(f"turn {i}", topic_response('t'), 0.0)
        assert [turn.user_input for turn in manager.context.history] == ["turn 6", "turn 7", "turn 8", "turn 9"]

    def test_threads(self):
        manager = ContextManager()
        for topic in ['finance', 'finance', 'career', 'general', 'career', 'career', 'career']:
            response = topic_response(topic) if topic != 'general' else Response(text="?")
            manager.update(f"about {topic}", response, 0.0)

        threads = manager.detect_threads()
        assert [(t['topic'], t['turns']) for t in threads] == [('finance', 2), ('career', 3)]

    def test_reset_keeps_phase_and_profile(self):
        manager = ContextManager()
        manager.merge_profile({'industry': 'tech'})
        manager.update("I have been struggling to keep a budget for many months", topic_response('finance'), 0.0)

        manager.reset()

        assert manager.context.active_topics == []
        assert manager.context.history == []
        assert manager.context.last_response is None
        assert manager.phase == ConversationPhase.EXPLORE
        assert manager.context.user_profile == {'industry': 'tech'}
