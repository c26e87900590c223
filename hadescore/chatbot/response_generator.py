"""
Response Generation
===================

Turns a match result into reply text:

1. a cross-topic forced response is returned as-is
2. low-confidence matches go to the contextual fallback handler
3. a topic ``generate_response`` hook may produce the reply itself;
   returning None defers to the template path below
4. otherwise a template is sampled from the matched pattern (or the
   topic defaults), transformed, and has ``%N`` captures and
   ``%solution`` substituted

Empathy phrases and related-topic suggestions are added afterwards by
``decorate`` so blended replies get them only once.
"""

from typing import Dict, Any, Optional
import logging
import random
import re

from .dialog_state import ConversationContext
from .fallback_handler import FallbackHandler
from .matcher import MatchResult
from .response import Response, ResponseType, coerce_response
from .text_analyzer import TextAnalysis
from .topic import Topic, TopicGraph

logger = logging.getLogger(__name__)

CAPTURE_PLACEHOLDER = re.compile(r'%(\d+)')
SOLUTION_PLACEHOLDER = '%solution'

EMPATHY_PHRASES = [
    "I can imagine this must be difficult.",
    "This sounds challenging.",
    "I understand this might be hard.",
    "I hear how important this is.",
]


def substitute_captures(template: str, regex_match: Optional["re.Match[str]"]) -> str:
    """Replace ``%N`` with capture group N; missing or unmatched groups become ''."""
    def replace(m: "re.Match[str]") -> str:
        if regex_match is None:
            return ''
        index = int(m.group(1))
        if index > (regex_match.re.groups or 0):
            return ''
        return regex_match.group(index) or ''

    return CAPTURE_PLACEHOLDER.sub(replace, template)


class ResponseGenerator:
    """Builds topic replies with an injectable random source."""

    def __init__(self, fallback: FallbackHandler, rng: Optional[random.Random] = None,
                 config: Optional[Dict[str, Any]] = None, graph: Optional[TopicGraph] = None):
        self.config = config or {}
        self.fallback = fallback
        self.rng = rng or random.Random()
        self.graph = graph
        self.min_match_score = self.config.get('min_match_score', 0.5)
        self.empathy_threshold = self.config.get('empathy_threshold', -0.5)
        self.related_topic_probability = self.config.get('related_topic_probability', 0.4)

    def generate(self, input_text: str, match_result: MatchResult, context: ConversationContext,
                 analysis: Optional[TextAnalysis] = None) -> Response:
        """Full reply for one match, decorated with empathy and related topics."""
        response = self.compose(input_text, match_result, context, analysis)
        if response.is_topic_based and match_result.forced_response is None:
            sentiment = analysis.sentiment if analysis else context.emotional_state
            response = self.decorate(response, match_result.topic, sentiment)
        return response

    def compose(self, input_text: str, match_result: MatchResult, context: ConversationContext,
                analysis: Optional[TextAnalysis] = None) -> Response:
        """Undecorated reply for one match."""
        if match_result.forced_response is not None:
            return match_result.forced_response

        if not match_result.is_confident(self.min_match_score):
            return self.fallback.respond(input_text, analysis)

        topic = match_result.topic
        sentiment = analysis.sentiment if analysis else context.emotional_state

        try:
            response = None
            if topic.generate_response is not None:
                response = coerce_response(
                    topic.generate_response(input_text, match_result, context),
                    default_topic=topic.name,
                )
                if response is not None and SOLUTION_PLACEHOLDER in response.text:
                    solution = topic.pick_solution(input_text, context, self.rng)
                    response.text = response.text.replace(SOLUTION_PLACEHOLDER, solution)
                    if solution not in response.solutions:
                        response.solutions.append(solution)
            if response is None:
                response = self.render_template(input_text, match_result, context)
        except Exception as e:
            logger.error(f"Response generation failed for topic '{topic.name}': {e}")
            return self.fallback.respond(input_text, analysis)

        return response.tagged(
            ResponseType.TOPIC,
            score=match_result.score,
            sentiment=sentiment,
            pattern=match_result.pattern.source if match_result.pattern else None,
        )

    def render_template(self, input_text: str, match_result: MatchResult,
                        context: ConversationContext) -> Response:
        topic = match_result.topic
        pattern = match_result.pattern

        templates = pattern.responses if pattern and pattern.responses else topic.get_default_responses()
        template = self.rng.choice(templates)

        if pattern and pattern.transform is not None:
            template = pattern.transform(template, input_text, context)

        regex_match = match_result.match
        if regex_match is None and pattern is not None:
            regex_match = pattern.regex.search(input_text)
        text = substitute_captures(template, regex_match)

        solutions = []
        if SOLUTION_PLACEHOLDER in text:
            solution = topic.pick_solution(input_text, context, self.rng)
            text = text.replace(SOLUTION_PLACEHOLDER, solution)
            solutions.append(solution)

        return Response(text=text, topic=topic.name, solutions=solutions)

    def decorate(self, response: Response, topic: Optional[Topic], sentiment: float) -> Response:
        """Prepend an empathy phrase for low sentiment; sometimes suggest related topics."""
        if response.metadata.get('immediate'):
            return response

        text = response.text
        if sentiment < self.empathy_threshold:
            text = f"{self.rng.choice(EMPATHY_PHRASES)} {text}"

        if self.graph is not None and topic is not None and self.rng.random() < self.related_topic_probability:
            related = self.graph.related(topic.name)
            if related:
                names = ", ".join(name.replace('_', ' ') for name in related)
                text = f"{text}\n\nRelated topics: {names}"

        if text == response.text:
            return response
        return Response(
            text=text,
            topic=response.topic,
            solutions=list(response.solutions),
            metadata=dict(response.metadata),
            exit=response.exit,
        )
