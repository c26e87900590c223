"""
Unit Tests for Text Analysis
============================
"""

from unittest.mock import patch

import pytest

from hadescore.chatbot.text_analyzer import LexiconTextAnalyzer


@pytest.fixture
def analyzer():
    return LexiconTextAnalyzer()


class TestTokenizeAndStem:

    def test_contractions_expanded(self, analyzer):
        assert analyzer.tokenize("I can't PAY") == ['i', 'can', 'not', 'pay']

    @pytest.mark.parametrize("word,stem", [
        ("interviews", "interview"),
        ("worries", "worry"),
        ("boxes", "box"),
        ("stressed", "stress"),
        ("bus", "bus"),
        ("business", "business"),
    ])
    def test_stem(self, analyzer, word, stem):
        assert analyzer.stem(word) == stem

    def test_stemming_can_be_disabled(self):
        assert LexiconTextAnalyzer({'enable_stemming': False}).stem("interviews") == "interviews"


class TestSentiment:

    def test_intensifier_and_negation(self, analyzer):
        assert analyzer.sentiment(['very', 'good']) == pytest.approx(0.78)
        assert analyzer.sentiment(['i', 'am', 'not', 'happy']) == pytest.approx(-0.525)
        assert analyzer.sentiment(['the', 'weather']) == 0.0

    def test_bounded(self, analyzer):
        assert -1.0 <= analyzer.sentiment(['extremely', 'terrible']) <= 1.0


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_entities(self, analyzer):
        analysis = await analyzer.analyze("I saved $500 in 3 months, about 10%")

        assert analysis.entities['amounts'] == ['$500']
        assert analysis.entities['durations'] == ['3 months']
        assert analysis.entities['percentages'] == ['10%']
        assert 'saved' in analysis.entities['keywords']

    @pytest.mark.asyncio
    async def test_blank_input_is_neutral(self, analyzer):
        analysis = await analyzer.analyze("   ")
        assert analysis.sentiment == 0.0
        assert analysis.tokens == []

    @pytest.mark.asyncio
    async def test_failure_degrades_to_neutral(self, analyzer):
        with patch.object(analyzer, 'sentiment', side_effect=RuntimeError("lexicon broken")):
            analysis = await analyzer.analyze("I feel terrible")

        assert analysis.sentiment == 0.0
        assert analysis.tokens == ['i', 'feel', 'terrible']
        assert analyzer.metrics['analysis_errors'] == 1
