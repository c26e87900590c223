"""
Text Analysis
=============

Tokenization, light stemming, lexicon-based sentiment scoring and simple
entity extraction. The dialogue engine only depends on the
``TextAnalyzer`` contract, so a different analyzer can be injected.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import logging
import re

logger = logging.getLogger(__name__)


@dataclass
class TextAnalysis:
    """Result of analyzing one line of user input."""
    original: str
    tokens: List[str] = field(default_factory=list)
    stems: List[str] = field(default_factory=list)
    sentiment: float = 0.0  # -1.0 to 1.0
    entities: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def neutral(cls, text: str) -> "TextAnalysis":
        """Analysis used when the analyzer fails or input is empty."""
        return cls(original=text, tokens=text.lower().split() if isinstance(text, str) else [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'original': self.original,
            'tokens': self.tokens,
            'stems': self.stems,
            'sentiment': self.sentiment,
            'entities': self.entities,
        }


class TextAnalyzer(ABC):
    """Contract consumed by the dialogue engine."""

    @abstractmethod
    def tokenize(self, text: str) -> List[str]:
        pass

    @abstractmethod
    def stem(self, word: str) -> str:
        pass

    @abstractmethod
    def sentiment(self, tokens: List[str]) -> float:
        pass

    async def analyze(self, text: str) -> TextAnalysis:
        tokens = self.tokenize(text)
        return TextAnalysis(
            original=text,
            tokens=tokens,
            stems=[self.stem(t) for t in tokens],
            sentiment=self.sentiment(tokens),
        )


class SentimentLexicon:
    """Sentiment lexicon with weighted words, intensifiers and negators."""

    def __init__(self):
        self.positive_words = {
            'excellent': 0.9, 'amazing': 0.8, 'wonderful': 0.8, 'fantastic': 0.8,
            'great': 0.7, 'good': 0.6, 'nice': 0.5, 'okay': 0.3, 'fine': 0.3,
            'love': 0.8, 'like': 0.4, 'enjoy': 0.7, 'appreciate': 0.6,
            'happy': 0.7, 'pleased': 0.6, 'satisfied': 0.6, 'delighted': 0.8,
            'awesome': 0.8, 'perfect': 0.9, 'thanks': 0.5, 'thank': 0.5,
            'hopeful': 0.6, 'relieved': 0.6, 'calm': 0.5, 'confident': 0.6,
            'better': 0.4, 'helpful': 0.6, 'excited': 0.7, 'proud': 0.7,
            'grateful': 0.7, 'glad': 0.6, 'success': 0.6, 'promotion': 0.4,
        }

        self.negative_words = {
            'terrible': -0.9, 'awful': -0.8, 'horrible': -0.8, 'bad': -0.7,
            'poor': -0.5, 'disappointing': -0.7, 'hate': -0.8, 'dislike': -0.6,
            'angry': -0.7, 'upset': -0.6, 'frustrated': -0.7, 'annoyed': -0.6,
            'sad': -0.6, 'depressed': -0.8, 'unhappy': -0.7, 'miserable': -0.8,
            'worried': -0.6, 'concerned': -0.5, 'anxious': -0.7, 'nervous': -0.6,
            'scared': -0.7, 'afraid': -0.7, 'terrified': -0.9, 'hopeless': -0.9,
            'stressed': -0.7, 'stress': -0.6, 'overwhelmed': -0.7, 'lonely': -0.7,
            'exhausted': -0.6, 'tired': -0.4, 'desperate': -0.8, 'panic': -0.8,
            'crisis': -0.7, 'problem': -0.4, 'broke': -0.6, 'debt': -0.4,
            'struggling': -0.6, 'lost': -0.5, 'fired': -0.6, 'failure': -0.7,
            'worthless': -0.9, 'crying': -0.7, 'hurt': -0.6,
            'down': -0.3, 'wrong': -0.4, 'broken': -0.5, 'crash': -0.4,
        }

        self.intensifiers = {
            'very': 1.3, 'extremely': 1.5, 'incredibly': 1.4, 'absolutely': 1.4,
            'totally': 1.3, 'completely': 1.3, 'really': 1.2, 'so': 1.2,
            'quite': 1.1, 'pretty': 1.1, 'somewhat': 0.8, 'slightly': 0.7,
            'barely': 0.5, 'hardly': 0.5,
        }

        self.negators = {'not', 'no', 'never', 'nothing', 'without', 'nobody'}

    def get_word_sentiment(self, word: str) -> float:
        """Get sentiment score for a word."""
        word_lower = word.lower()
        if word_lower in self.positive_words:
            return self.positive_words[word_lower]
        return self.negative_words.get(word_lower, 0.0)

    def get_intensifier_weight(self, word: str) -> float:
        return self.intensifiers.get(word.lower(), 1.0)


CONTRACTIONS = {
    "can't": "can not", "won't": "will not", "n't": " not", "'re": " are",
    "'m": " am", "'ll": " will", "'ve": " have", "'d": " would",
}

STOPWORDS = {
    'the', 'and', 'for', 'with', 'that', 'this', 'have', 'from', 'about',
    'what', 'when', 'where', 'which', 'would', 'could', 'should', 'there',
    'their', 'they', 'them', 'been', 'were', 'will', 'your', 'just', 'into',
}


class LexiconTextAnalyzer(TextAnalyzer):
    """Default analyzer: regex tokenizer, suffix stemmer, weighted lexicon."""

    AMOUNT_PATTERN = re.compile(r'\$\s?\d[\d,]*(?:\.\d+)?|\b\d[\d,]*(?:\.\d+)?\s?(?:dollars|usd|bucks)\b', re.IGNORECASE)
    DURATION_PATTERN = re.compile(r'\b\d+\s?(?:minute|hour|day|week|month|year)s?\b', re.IGNORECASE)
    PERCENT_PATTERN = re.compile(r'\b\d+(?:\.\d+)?\s?%')

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.lexicon = SentimentLexicon()
        self.enable_stemming = self.config.get('enable_stemming', True)
        self.enable_sentiment = self.config.get('enable_sentiment', True)

        self.metrics = {
            'analyses_performed': 0,
            'analysis_errors': 0,
        }

    def _expand_contractions(self, text: str) -> str:
        text = text.replace("’", "'")
        for contraction, expansion in CONTRACTIONS.items():
            text = text.replace(contraction, expansion)
        return text

    def tokenize(self, text: str) -> List[str]:
        text = self._expand_contractions(text.lower())
        return re.findall(r"\b\w+\b", text)

    def stem(self, word: str) -> str:
        """Strip common English suffixes; never shortens below three letters."""
        word = word.lower()
        if not self.enable_stemming or len(word) <= 3:
            return word

        if word.endswith('ies') and len(word) > 4:
            return word[:-3] + 'y'
        if word.endswith('ing') and len(word) > 5:
            return word[:-3]
        if word.endswith('ed') and len(word) > 4:
            return word[:-2]
        if word.endswith('ly') and len(word) > 4:
            return word[:-2]
        if word.endswith('es') and word[-3:-2] in ('s', 'x', 'z') and len(word) > 4:
            return word[:-2]
        if word.endswith('s') and not word.endswith(('ss', 'us', 'is')):
            return word[:-1]
        return word

    def sentiment(self, tokens: List[str]) -> float:
        """Average weighted polarity of the sentiment-bearing tokens, in [-1, 1]."""
        if not self.enable_sentiment or not tokens:
            return 0.0

        scores = []
        for i, token in enumerate(tokens):
            score = self.lexicon.get_word_sentiment(token)
            if score == 0:
                continue

            if i > 0:
                score *= self.lexicon.get_intensifier_weight(tokens[i - 1])

            window = tokens[max(0, i - 3):i]
            if any(w in self.lexicon.negators for w in window):
                score *= -0.75

            scores.append(score)

        if not scores:
            return 0.0

        polarity = sum(scores) / len(scores)
        return max(-1.0, min(1.0, polarity))

    def extract_entities(self, text: str, tokens: List[str]) -> Dict[str, List[str]]:
        entities = {
            'amounts': [m.strip() for m in self.AMOUNT_PATTERN.findall(text)],
            'durations': [m.strip() for m in self.DURATION_PATTERN.findall(text)],
            'percentages': [m.strip() for m in self.PERCENT_PATTERN.findall(text)],
            'keywords': [t for t in tokens if len(t) > 3 and t not in STOPWORDS],
        }
        return {name: values for name, values in entities.items() if values}

    async def analyze(self, text: str) -> TextAnalysis:
        """Analyze one line of input; failures yield a neutral analysis."""
        if not text or not text.strip():
            return TextAnalysis.neutral(text or "")

        try:
            tokens = self.tokenize(text)
            analysis = TextAnalysis(
                original=text,
                tokens=tokens,
                stems=[self.stem(t) for t in tokens],
                sentiment=self.sentiment(tokens),
                entities=self.extract_entities(text, tokens),
            )
            self.metrics['analyses_performed'] += 1
            return analysis
        except Exception as e:
            self.metrics['analysis_errors'] += 1
            logger.error(f"Error during text analysis: {e}")
            return TextAnalysis.neutral(text)
