"""
Agent Core
==========

Turn orchestrator: the only component callers talk to. One turn runs:

1. validate and analyze the input, log it to short-term memory
2. built-in actions (help, exit, topics, reset), first match wins
3. clarification of the previous reply, or a follow-up question after "yes"
4. cross-topic check, then scoring of every topic
5. AI fallback when no topic is confident enough
6. local generation or blending, with the fallback handler as last resort
7. context, profile and memory updates

Turns of one session are serialized by a lock; sessions share nothing
mutable except the read-only topic registry and provider clients.
"""

from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging
import random
import re

from .dialog_state import ContextManager, ConversationContext, NON_TOPIC_NAMES
from .fallback_handler import FallbackHandler
from .matcher import CROSS_TOPIC_SCORE, MatchResult, TopicMatcher
from .memory import MemoryStore, MemoryType
from .response import Response, ResponseType, coerce_response
from .response_blender import ResponseBlender
from .response_generator import ResponseGenerator
from .text_analyzer import LexiconTextAnalyzer, TextAnalysis, TextAnalyzer
from .topic import Topic, TopicGraph, TopicRegistry
from .topic_loader import load_builtin_topics
from ..config.config_manager import Settings
from ..database.base import BlobStore
from ..database.factory import create_blob_store
from ..llm.inference_router import AIFallbackOrchestrator
from ..llm.llm_client import GenerationOptions, content_filter

logger = logging.getLogger(__name__)

GOODBYE_TEXT = "Goodbye! Feel free to return if you have more questions."

CLARIFICATION_REQUEST = re.compile(
    r"^\s*(?:what(?:'s| is| are| does)|explain|how do i(?: do)?|tell me more about)\s+(.+?)\s*\??\s*$",
    re.IGNORECASE,
)
PRONOUNS = {"it", "that", "this", "those", "them", "the first one"}
VAGUE_CLARIFICATION = re.compile(
    r"\bwhat do you mean\b|\bwhat does that mean\b|\bi don'?t (?:understand|get it)\b",
    re.IGNORECASE,
)
_FILLER = {
    "that", "this", "those", "them", "part", "about", "which", "thing", "first", "second",
    "with", "what", "mean", "need", "help", "please", "more", "your",
}
_WORD = re.compile(r"[a-z0-9-]+")

AFFIRMATION = re.compile(r"^(?:yes|yeah|yep|sure|ok|okay|agreed?)\b", re.IGNORECASE)
AFFIRMATION_MAX_WORDS = 4
FOLLOW_UP_PROMPTS = [
    "What specifically would you like to know?",
    "Which aspect interests you most?",
    "How can I elaborate on that?",
]


class InvalidInputError(ValueError):
    """Raised for empty or non-text input."""


@dataclass
class Action:
    """Built-in or registered command matched against raw input."""
    name: str
    pattern: "re.Pattern[str]"
    handler: Callable[[str], Any]


def _refers_to(subject: str, solution: str) -> bool:
    """Whether a clarification subject points at a solution, by containment or a shared word."""
    solution_lower = solution.lower()
    if subject in PRONOUNS or subject in solution_lower or solution_lower in subject:
        return True
    words = {w for w in _WORD.findall(subject) if len(w) >= 4} - _FILLER
    return bool(words & set(_WORD.findall(solution_lower)))


class AgentCore:
    """
    HADES dialogue engine for one conversation session.

    All collaborators are injectable; anything not passed in is built
    from ``settings``.
    """

    def __init__(self, registry: TopicRegistry, settings: Optional[Settings] = None,
                 analyzer: Optional[TextAnalyzer] = None, memory: Optional[MemoryStore] = None,
                 ai: Optional[AIFallbackOrchestrator] = None, rng: Optional[random.Random] = None,
                 blob_store: Optional[BlobStore] = None, blob_key: Optional[str] = None):
        self.settings = settings or Settings()
        self.registry = registry
        self.rng = rng or random.Random()

        conversation = asdict(self.settings.conversation)
        memory_config = self.settings.memory

        self.analyzer = analyzer or LexiconTextAnalyzer(asdict(self.settings.nlp))
        self.memory = memory or MemoryStore(
            short_term_capacity=memory_config.short_term_capacity,
            episodic_capacity=memory_config.episodic_capacity,
            blob_store=blob_store,
            blob_key=blob_key or memory_config.blob_key,
        )
        self.context_manager = ContextManager(conversation)
        self.matcher = TopicMatcher(
            registry,
            self.analyzer,
            keyword_weight=self.settings.conversation.keyword_weight,
            min_match_score=self.settings.conversation.min_match_score,
        )
        self.graph = TopicGraph(registry)
        self.fallback = FallbackHandler(self.rng, conversation)
        self.generator = ResponseGenerator(self.fallback, self.rng, conversation, self.graph)
        self.blender = ResponseBlender(registry)
        self.ai = ai

        self.min_match_score = self.settings.conversation.min_match_score
        self.blend_margin = self.settings.conversation.blend_margin
        self.topic_blending = self.settings.integration.topic_blending

        self.actions: List[Action] = []
        self._register_builtin_actions()

        self._turn_lock = asyncio.Lock()
        self.metrics = {
            'turns': 0,
            'actions': 0,
            'clarifications': 0,
            'follow_ups': 0,
            'ai_responses': 0,
            'blended': 0,
            'invalid_inputs': 0,
            'processing_errors': 0,
        }

    @classmethod
    def from_settings(cls, settings: Settings, registry: Optional[TopicRegistry] = None,
                      **kwargs) -> "AgentCore":
        """Agent wired from settings: built-in topics, configured store and provider chain."""
        if registry is None:
            registry = load_builtin_topics(settings.topics_directory)
        kwargs.setdefault('blob_store', create_blob_store(settings.memory))
        kwargs.setdefault('ai', AIFallbackOrchestrator.from_settings(settings))
        return cls(registry, settings=settings, **kwargs)

    @property
    def context(self) -> ConversationContext:
        return self.context_manager.context

    async def initialize(self) -> bool:
        """Load persisted memory."""
        logger.info("Initializing HADES agent...")
        loaded = await self.memory.load()
        logger.info(f"HADES agent ready with {len(self.registry)} topics")
        return loaded

    async def shutdown(self):
        """Wait for pending memory writes."""
        await self.memory.flush()

    # -- actions --------------------------------------------------------

    def register_action(self, name: str, pattern: str, handler: Callable[[str], Any]):
        """Add an action; actions are tried in registration order."""
        self.actions.append(Action(name=name, pattern=re.compile(pattern, re.IGNORECASE), handler=handler))

    def _register_builtin_actions(self):
        self.register_action('help', r'^(help|commands|what can you do)\b', self._help_action)
        self.register_action('exit', r'^(exit|quit|goodbye)\b', self._exit_action)
        self.register_action('topics', r'^(list topics|show topics|topics)\b', self._topics_action)
        self.register_action('reset', r'^reset\b', self._reset_action)

    def check_actions(self, input_text: str) -> Optional[Response]:
        """Response of the first action whose pattern matches the raw input."""
        text = input_text.strip()
        for action in self.actions:
            if not action.pattern.search(text):
                continue
            response = coerce_response(action.handler(text), default_topic="system")
            if response is None:
                continue
            self.metrics['actions'] += 1
            return response.tagged(ResponseType.ACTION, action=action.name)
        return None

    def _help_action(self, _input: str) -> Response:
        names = ", ".join(topic.display_name for topic in self.registry)
        return Response(
            text=(
                "I'm HADES. Tell me what's on your mind and I'll suggest practical next steps. "
                f"I know about: {names}. "
                "Commands: 'topics' lists subjects, 'reset' starts over, 'exit' ends the conversation."
            ),
            topic="system",
        )

    def _exit_action(self, _input: str) -> Response:
        self.context_manager.close()
        return Response(text=GOODBYE_TEXT, topic="system", exit=True)

    def _topics_action(self, _input: str) -> Response:
        names = ", ".join(topic.display_name for topic in self.registry) or "none"
        return Response(text=f"Available topics: {names}", topic="system")

    def _reset_action(self, _input: str) -> Response:
        self.context_manager.reset()
        return Response(text="Conversation reset. What would you like to talk about?", topic="system")

    # -- clarification ----------------------------------------------------

    def check_clarification(self, input_text: str) -> Optional[Response]:
        """
        Explain a solution or term from the previous reply, if asked about one.

        A vague request ("what do you mean?") that names nothing we can
        explain is answered with a question, and the next turn is read as
        the answer. If that answer names nothing either, the pending
        question is dropped and the turn is matched normally.
        """
        pending = self.context.pending_clarification
        if pending is not None:
            self.context.pending_clarification = None
            response = self._explain(pending, input_text.lower().strip(' .?!'))
            if response is not None:
                return response

        last = self.context.last_response
        if last is None or not last.is_topic_based or last.topic in NON_TOPIC_NAMES:
            return None

        request = CLARIFICATION_REQUEST.match(input_text)
        subject = request.group(1).lower().strip(' .?!') if request else None
        if subject:
            response = self._explain(last, subject)
            if response is not None:
                return response

        if subject in PRONOUNS or VAGUE_CLARIFICATION.search(input_text):
            self.context.pending_clarification = last
            names = " and ".join(t.display_name for t in self._topics_named(last.topic)) or last.topic
            return Response(
                text=f"Which part of what I said about {names} should I explain?",
                topic=last.topic,
                solutions=list(last.solutions),
                metadata={'type': ResponseType.CLARIFICATION.value, 'awaiting': True},
            )
        return None

    def _explain(self, reply: Response, subject: str) -> Optional[Response]:
        topics = self._topics_named(reply.topic)
        for solution in reply.solutions:
            if not _refers_to(subject, solution):
                continue
            for topic in topics:
                explanation = topic.explain(solution)
                if explanation:
                    return self._clarification(explanation, topic, solution, [solution])

        for topic in topics:
            found = topic.explain_term(subject)
            if found:
                term, explanation = found
                return self._clarification(explanation, topic, term, [])
        return None

    def _clarification(self, text: str, topic: Topic, subject: str, solutions: List[str]) -> Response:
        self.metrics['clarifications'] += 1
        return Response(
            text=text,
            topic=topic.name,
            solutions=solutions,
            metadata={'type': ResponseType.CLARIFICATION.value, 'explains': subject},
        )

    # -- affirmation ------------------------------------------------------

    def check_affirmation(self, input_text: str) -> Optional[Response]:
        """A follow-up question from the last topic when the user just says yes."""
        if not AFFIRMATION.match(input_text) or len(input_text.split()) > AFFIRMATION_MAX_WORDS:
            return None
        last = self.context.last_response
        if last is None or not last.is_topic_based or last.topic in NON_TOPIC_NAMES:
            return None

        questions = [q for topic in self._topics_named(last.topic) for q in topic.follow_up_questions]
        self.metrics['follow_ups'] += 1
        return Response(
            text=self.rng.choice(questions or FOLLOW_UP_PROMPTS),
            topic=last.topic,
            metadata={'type': ResponseType.FOLLOW_UP.value, 'from_topic': bool(questions)},
        )

    # -- turn pipeline ----------------------------------------------------

    @staticmethod
    def validate_input(input_text: Any) -> str:
        """
        Raises:
            InvalidInputError: for non-string or blank input
        """
        if not isinstance(input_text, str):
            raise InvalidInputError(f"Expected text input, got {type(input_text).__name__}")
        text = input_text.strip()
        if not text:
            raise InvalidInputError("Empty input")
        return text

    async def process_input(self, input_text: Any) -> Response:
        """
        Run one turn. Never raises: invalid input gets the generic
        fallback, any other failure the processing-error reply.
        """
        async with self._turn_lock:
            self.metrics['turns'] += 1
            try:
                return await self._run_turn(input_text)
            except InvalidInputError as e:
                self.metrics['invalid_inputs'] += 1
                logger.info(f"Invalid input: {e}")
                return self.fallback.default_response()
            except Exception as e:
                self.metrics['processing_errors'] += 1
                logger.error(f"Turn processing failed: {e}", exc_info=True)
                return self.fallback.error_response()

    async def _run_turn(self, input_text: Any) -> Response:
        text = self.validate_input(input_text)
        logger.debug(f"Turn input: {content_filter.sanitize_for_logging(text)}")

        analysis = await self.analyzer.analyze(text)
        self.memory.store(MemoryType.SHORT_TERM, {
            'input': text,
            'sentiment': analysis.sentiment,
            'tokens': analysis.tokens,
            'entities': analysis.entities,
        })

        action_response = self.check_actions(text)
        if action_response is not None:
            return action_response

        match = MatchResult()
        response = self.check_clarification(text)
        if response is None:
            response = self.check_affirmation(text)

        if response is None:
            forced = self.matcher.check_cross_topics(text, self.context)
            ranked = [forced] if forced is not None else self.matcher.rank(text, self.context)
            if ranked:
                match = ranked[0]

            if self.ai is not None and self.ai.should_use_ai(text, match):
                confident = match.is_confident(self.min_match_score)
                response = await self.ai.try_generate(text, GenerationOptions(
                    sentiment=analysis.sentiment,
                    topic=match.topic_name if match.score > 0 else None,
                    is_fallback=not confident,
                ))
                if response is not None:
                    self.metrics['ai_responses'] += 1

            if response is None:
                response = self._generate_local(text, ranked, analysis)

        self._after_turn(text, response, match)
        return response

    def _generate_local(self, text: str, ranked: List[MatchResult], analysis: TextAnalysis) -> Response:
        best = ranked[0] if ranked else MatchResult()

        if self._should_blend(ranked):
            primary = self.generator.compose(text, ranked[0], self.context, analysis)
            secondary = self.generator.compose(text, ranked[1], self.context, analysis)
            if (primary.type == ResponseType.TOPIC.value and secondary.type == ResponseType.TOPIC.value
                    and not primary.metadata.get('immediate') and not secondary.metadata.get('immediate')):
                blended = self.blender.blend(primary, secondary, self.context)
                if blended is not primary:
                    self.metrics['blended'] += 1
                return self.generator.decorate(blended, ranked[0].topic, analysis.sentiment)

        return self.generator.generate(text, best, self.context, analysis)

    def _should_blend(self, ranked: List[MatchResult]) -> bool:
        if not self.topic_blending or len(ranked) < 2:
            return False
        first, second = ranked[0], ranked[1]
        if first.forced_response is not None:
            return False
        if not (first.is_confident(self.min_match_score) and second.is_confident(self.min_match_score)):
            return False
        return first.score - second.score <= self.blend_margin

    def _topics_named(self, name: str) -> List[Topic]:
        return [self.registry.get(part) for part in name.split('+') if part in self.registry]

    def _after_turn(self, text: str, response: Response, match: MatchResult):
        """Context, profile and memory effects of a completed turn."""
        self.context_manager.update(text, response, self.memory.recent_sentiment_average(3))

        topics = self._topics_named(response.topic) if response.is_topic_based else []
        if match.topic is not None and match.score > 0 and match.topic.name not in {t.name for t in topics}:
            topics.append(match.topic)

        for topic in topics:
            try:
                self.context_manager.merge_profile(topic.extract_profile(text, self.context.user_profile))
                for data in topic.fire_memory_triggers(text):
                    if data is not None:
                        self.memory.store(MemoryType.EPISODIC, data, topic=topic.name)
            except Exception as e:
                logger.warning(f"Profile/memory hooks of topic '{topic.name}' failed: {e}")

        episode_topic = response.topic if response.is_topic_based and response.topic not in NON_TOPIC_NAMES else None
        self.memory.store(
            MemoryType.EPISODIC,
            {'input': text, 'response': response.text, 'type': response.type},
            topic=episode_topic,
            relevance=min(1.0, max(0.0, match.score) / CROSS_TOPIC_SCORE),
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            'topics': self.registry.names(),
            'context': self.context.to_dict(),
            'relevant_context': self.context_manager.get_relevant_context(),
            'memory': self.memory.get_stats(),
            'recent': self.memory.summarize_recent(),
            'matcher': dict(self.matcher.metrics),
            'fallbacks': self.fallback.get_metrics(),
            'blender': dict(self.blender.metrics),
            'ai': self.ai.get_metrics() if self.ai else None,
            **self.metrics,
        }


class SessionManager:
    """
    One ``AgentCore`` per session id. The topic registry, blob store and
    provider chain are built once and shared; each session persists
    memory under its own key.

    At most ``memory.max_sessions`` sessions are kept in process. The
    least recently used one is flushed and dropped to make room; its
    persisted memory is restored if it comes back.
    """

    def __init__(self, settings: Settings, registry: Optional[TopicRegistry] = None,
                 ai: Optional[AIFallbackOrchestrator] = None, blob_store: Optional[BlobStore] = None,
                 rng_factory: Optional[Callable[[str], random.Random]] = None):
        self.settings = settings
        self.registry = registry if registry is not None else load_builtin_topics(settings.topics_directory)
        self.ai = ai if ai is not None else AIFallbackOrchestrator.from_settings(settings)
        self.blob_store = blob_store if blob_store is not None else create_blob_store(settings.memory)
        self.rng_factory = rng_factory

        self.max_sessions = settings.memory.max_sessions
        self.sessions: "OrderedDict[str, AgentCore]" = OrderedDict()
        self.metrics = {'created': 0, 'evicted': 0}
        self._lock = asyncio.Lock()

    async def get_session(self, session_id: str) -> AgentCore:
        async with self._lock:
            agent = self.sessions.get(session_id)
            if agent is not None:
                self.sessions.move_to_end(session_id)
            else:
                while len(self.sessions) >= self.max_sessions:
                    idle_id, idle = self.sessions.popitem(last=False)
                    await idle.shutdown()
                    self.metrics['evicted'] += 1
                    logger.info(f"Evicted idle session {idle_id}")
                agent = AgentCore(
                    self.registry,
                    settings=self.settings,
                    ai=self.ai,
                    rng=self.rng_factory(session_id) if self.rng_factory else None,
                    blob_store=self.blob_store,
                    blob_key=f"{self.settings.memory.blob_key}-{session_id}",
                )
                await agent.initialize()
                self.sessions[session_id] = agent
                self.metrics['created'] += 1
                logger.info(f"Created session {session_id}")
            return agent

    async def process(self, session_id: str, input_text: Any) -> Response:
        agent = await self.get_session(session_id)
        return await agent.process_input(input_text)

    async def end_session(self, session_id: str) -> bool:
        async with self._lock:
            agent = self.sessions.pop(session_id, None)
        if agent is None:
            return False
        await agent.shutdown()
        return True

    async def close(self):
        """Flush every session, then release the shared store and providers."""
        for session_id in list(self.sessions):
            await self.end_session(session_id)
        if self.ai is not None:
            await self.ai.close()
        if self.blob_store is not None:
            await self.blob_store.close()
