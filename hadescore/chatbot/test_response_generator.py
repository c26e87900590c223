"""
Unit Tests for Response Generation
==================================

Template rendering, fallback classification, decoration and blending.
"""

import random
import re

import pytest

from hadescore.chatbot.dialog_state import ConversationContext
from hadescore.chatbot.fallback_handler import FallbackHandler, FallbackType, PROCESSING_ERROR_TEXT
from hadescore.chatbot.matcher import MatchResult
from hadescore.chatbot.response import Response, ResponseType, coerce_response
from hadescore.chatbot.response_blender import ResponseBlender, split_sentences
from hadescore.chatbot.response_generator import EMPATHY_PHRASES, ResponseGenerator, substitute_captures
from hadescore.chatbot.text_analyzer import TextAnalysis
from hadescore.chatbot.topic import Topic, TopicGraph, TopicRegistry


SOLUTIONS = ["tracking all expenses for a week", "creating a 50-30-20 budget plan"]


@pytest.fixture
def registry():
    return TopicRegistry.from_definitions([
        {
            'name': 'personal_finance',
            'keywords': ['savings'],
            'priority': 1.2,
            'patterns': [{'regex': r'I need (?:help|advice) with (.*)',
                          'responses': ['For %1, try these steps: %solution']}],
            'solutions': SOLUTIONS,
            'related_topics': ['career_advice'],
        },
        {'name': 'career_advice', 'keywords': ['job']},
    ])


def make_generator(registry=None, seed=7, **config):
    rng = random.Random(seed)
    config.setdefault('related_topic_probability', 0.0)
    graph = TopicGraph(registry) if registry is not None else None
    return ResponseGenerator(FallbackHandler(rng), rng, config, graph)


def analysis(text, sentiment=0.0):
    return TextAnalysis(original=text, tokens=text.lower().split(), sentiment=sentiment)


class TestTemplateRendering:
    """Test template choice and placeholder substitution."""

    def test_capture_and_solution_substitution(self, registry):
        generator = make_generator(registry)
        topic = registry.get('personal_finance')
        text = "I need help with savings"
        regex_match = topic.patterns[0].regex.search(text)
        match = MatchResult(score=2.75, topic=topic, pattern=topic.patterns[0], match=regex_match)

        response = generator.generate(text, match, ConversationContext(), analysis(text))

        assert "savings" in response.text
        assert response.text.startswith("For savings, try these steps: ")
        assert len(response.solutions) == 1
        assert response.solutions[0] in SOLUTIONS
        assert response.solutions[0] in response.text
        assert response.type == ResponseType.TOPIC.value
        assert response.topic == 'personal_finance'

    def test_missing_capture_becomes_empty(self):
        regex_match = re.search(r'(a)(b)?', 'a')
        assert substitute_captures("%1-%2-%3", regex_match) == "a--"
        assert substitute_captures("%1", None) == ""

    def test_default_templates_without_pattern(self):
        generator = make_generator()
        topic = Topic(name='career_advice', keywords=['job'])
        response = generator.generate("job", MatchResult(score=0.75, topic=topic), ConversationContext())
        assert response.text == "Tell me more about career advice."

    def test_same_seed_same_output(self, registry):
        topic = registry.get('personal_finance')
        text = "I need advice with budgeting"
        outputs = set()
        for _ in range(3):
            generator = make_generator(registry, seed=42)
            match = MatchResult(score=2.0, topic=topic, pattern=topic.patterns[0])
            outputs.add(generator.generate(text, match, ConversationContext()).text)
        assert len(outputs) == 1

    def test_transform_hook_applies(self):
        generator = make_generator()
        topic = Topic.from_definition({
            'name': 't',
            'patterns': [{'regex': 'hi', 'responses': ['hello'], 'transform': lambda tpl, text, ctx: tpl.upper()}],
        })
        match = MatchResult(score=2.0, topic=topic, pattern=topic.patterns[0])
        assert generator.generate("hi", match, ConversationContext()).text == "HELLO"

    def test_generate_hook_and_placeholder(self):
        generator = make_generator()
        topic = Topic.from_definition({
            'name': 'tech',
            'solutions': ['restart the router'],
            'generate_response': lambda text, match, ctx: "Also try: %solution",
        })
        response = generator.generate("wifi", MatchResult(score=1.0, topic=topic), ConversationContext())
        assert response.text == "Also try: restart the router"
        assert response.solutions == ['restart the router']

    def test_hook_returning_none_uses_templates(self):
        generator = make_generator()
        topic = Topic.from_definition({
            'name': 'tech',
            'default_responses': ['Template reply.'],
            'generate_response': lambda text, match, ctx: None,
        })
        assert generator.generate("x", MatchResult(score=1.0, topic=topic), ConversationContext()).text == "Template reply."

    def test_failing_hook_falls_back(self):
        def broken(text, match, ctx):
            raise RuntimeError("boom")

        generator = make_generator()
        topic = Topic.from_definition({'name': 'tech', 'generate_response': broken})
        response = generator.generate("fix it", MatchResult(score=1.0, topic=topic), ConversationContext())
        assert response.type.endswith('fallback')


class TestForcedAndDecoration:
    """Test forced responses, empathy and related topics."""

    def test_forced_response_verbatim(self, registry):
        generator = make_generator(registry, related_topic_probability=1.0)
        forced = Response(text="Handoff text.", topic='career_advice',
                          metadata={'type': ResponseType.CROSS_TOPIC.value})
        match = MatchResult(score=3.0, topic=registry.get('career_advice'), forced_response=forced)

        response = generator.generate("x", match, ConversationContext(), analysis("x", sentiment=-0.9))
        assert response is forced

    def test_empathy_for_low_sentiment(self, registry):
        generator = make_generator(registry)
        topic = registry.get('career_advice')
        response = generator.generate("job", MatchResult(score=0.75, topic=topic),
                                      ConversationContext(), analysis("job", sentiment=-0.8))
        assert any(response.text.startswith(phrase) for phrase in EMPATHY_PHRASES)

    def test_no_empathy_above_threshold(self, registry):
        generator = make_generator(registry)
        topic = registry.get('career_advice')
        response = generator.generate("job", MatchResult(score=0.75, topic=topic),
                                      ConversationContext(), analysis("job", sentiment=-0.4))
        assert response.text == "Tell me more about career advice."

    def test_related_topics_suggested(self, registry):
        generator = make_generator(registry, related_topic_probability=1.0)
        topic = registry.get('personal_finance')
        response = generator.generate("savings", MatchResult(score=0.75, topic=topic), ConversationContext())
        assert response.text.endswith("Related topics: career advice")

    def test_immediate_responses_not_decorated(self, registry):
        generator = make_generator(registry, related_topic_probability=1.0)
        topic = Topic.from_definition({
            'name': 'crisis',
            'generate_response': lambda text, match, ctx: {'response': "Call 988.", 'immediate': True},
        })
        response = generator.generate("help", MatchResult(score=1.0, topic=topic),
                                      ConversationContext(), analysis("help", sentiment=-0.9))
        assert response.text == "Call 988."


class TestFallbackHandler:
    """Test contextual fallback classification."""

    @pytest.mark.parametrize("text,sentiment,expected", [
        ("I feel awful about everything today", -0.6, FallbackType.EMOTIONAL_SUPPORT),
        ("what is the meaning of this?", -0.6, FallbackType.EMOTIONAL_SUPPORT),
        ("what is the meaning of this?", 0.0, FallbackType.CLARIFICATION),
        ("hmm ok", 0.0, FallbackType.SHORT_INPUT),
        ("the weather outside is rather grey", 0.2, FallbackType.GENERIC),
    ])
    def test_classify(self, text, sentiment, expected):
        handler = FallbackHandler(random.Random(0))
        assert handler.classify(text, analysis(text, sentiment)) == expected

    def test_emotional_reply_never_generic(self):
        handler = FallbackHandler(random.Random(3))
        generic = set(handler.phrase_banks[FallbackType.GENERIC])
        for _ in range(20):
            response = handler.respond("everything is terrible", analysis("everything is terrible", -0.7))
            assert response.text not in generic
            assert response.text in handler.phrase_banks[FallbackType.EMOTIONAL_SUPPORT]
            assert response.type == ResponseType.EMOTIONAL_FALLBACK.value
            assert response.topic == 'emotional-support'

    def test_seeded_selection_is_deterministic(self):
        a = FallbackHandler(random.Random(11)).respond("hmm ok")
        b = FallbackHandler(random.Random(11)).respond("hmm ok")
        assert a.text == b.text

    def test_error_response(self):
        response = FallbackHandler().error_response()
        assert response.text == PROCESSING_ERROR_TEXT
        assert response.topic == 'error'
        assert response.type == ResponseType.PROCESSING_ERROR.value


class TestResponseBlender:
    """Test blend ratio bounds and merge invariants."""

    def make_blender(self, priorities):
        registry = TopicRegistry.from_definitions(
            [{'name': name, 'priority': priority} for name, priority in priorities.items()]
        )
        return ResponseBlender(registry)

    def reply(self, topic, text, solutions=(), sentiment=0.0):
        return Response(text=text, topic=topic, solutions=list(solutions),
                        metadata={'type': ResponseType.TOPIC.value, 'sentiment': sentiment})

    @pytest.mark.parametrize("p,s,active", [
        (1.0, 1.0, []), (10.0, 0.1, []), (0.1, 10.0, []), (1.0, 1.0, ['a']), (5.0, 1.0, ['a']), (1.0, 5.0, ['b']),
    ])
    def test_ratio_always_clamped(self, p, s, active):
        blender = self.make_blender({'a': p, 'b': s})
        _, ratio = blender.compute_ratio(self.reply('a', 'x'), self.reply('b', 'y'),
                                         ConversationContext(active_topics=active))
        assert 0.2 <= ratio <= 0.8

    def test_context_shift(self):
        blender = self.make_blender({'a': 1.0, 'b': 1.0})
        raw, _ = blender.compute_ratio(self.reply('a', 'x'), self.reply('b', 'y'),
                                       ConversationContext(active_topics=['b']))
        assert raw == pytest.approx(0.3)

    def test_skip_when_raw_ratio_below_threshold(self):
        blender = self.make_blender({'a': 1.0, 'b': 4.0})
        primary = self.reply('a', 'Primary text.')
        result = blender.blend(primary, self.reply('b', 'Secondary text.'), ConversationContext())
        assert result is primary
        assert blender.metrics['skipped'] == 1

    def test_blend_merges_structure(self):
        blender = self.make_blender({'a': 1.0, 'b': 1.0})
        primary = self.reply('a', 'First a. Second a.', solutions=['s1', 's2'], sentiment=0.4)
        secondary = self.reply('b', 'First b! Second b?', solutions=['s2', 's3'], sentiment=-0.4)

        result = blender.blend(primary, secondary, ConversationContext(active_topics=['a']))

        assert result.topic == 'a+b'
        assert result.solutions == ['s1', 's2', 's3']
        assert result.type == ResponseType.BLENDED.value
        assert result.metadata['blend_ratio'] == pytest.approx(0.7)
        assert result.sentiment == pytest.approx(0.7 * 0.4 + 0.3 * -0.4)
        assert result.text.startswith('First a.')
        assert result.text.strip()

    def test_split_sentences(self):
        assert split_sentences("One. Two! Three?\nFour") == ["One.", "Two!", "Three?", "Four"]


class TestCoerceResponse:
    """Test normalization of hook results."""

    def test_shapes(self):
        assert coerce_response(None) is None
        assert coerce_response("   ") is None
        assert coerce_response("hi", default_topic="t").topic == "t"

        response = coerce_response({'text': 'hello', 'solutions': ['a'], 'immediate': True, 'exit': True})
        assert response.text == 'hello'
        assert response.metadata['immediate'] is True
        assert response.exit is True

        with pytest.raises(TypeError):
            coerce_response(42)
