"""
Topic Model and Registry
========================

A topic is a named bundle of keywords, precompiled regex patterns with
response templates, solutions and optional behaviour hooks. Definitions
arrive either as plain mappings (data-only topics) or as objects carrying
methods (behaviour-augmented topics); both are normalized here into one
``Topic`` structure whose optional hooks are simply ``None`` when absent.

The registry is built once during a load phase, dependency-ordered, and
then frozen for the lifetime of the process.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import logging
import random
import re

logger = logging.getLogger(__name__)

DEFAULT_SOLUTION = "consider possible solutions"

HOOK_NAMES = ("match", "generate_response", "get_solution", "update_profile")


class TopicLoadError(Exception):
    """Raised when a topic definition is invalid or cannot be registered."""

    def __init__(self, message: str, topic_name: Optional[str] = None, source: Optional[str] = None):
        super().__init__(message)
        self.topic_name = topic_name
        self.source = source


@dataclass
class Pattern:
    """Precompiled regex with its response templates."""
    regex: "re.Pattern[str]"
    responses: List[str] = field(default_factory=list)
    transform: Optional[Callable[[str, str, Any], str]] = None

    @property
    def source(self) -> str:
        return self.regex.pattern


@dataclass
class MemoryTrigger:
    """Stores derived data in episodic memory when its pattern matches."""
    pattern: "re.Pattern[str]"
    store: Callable[[str], Any]


@dataclass
class Topic:
    """Canonical topic structure shared by data-only and behaviour-augmented topics."""
    name: str
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    patterns: List[Pattern] = field(default_factory=list)
    solutions: List[str] = field(default_factory=list)
    solution_explanations: Dict[str, str] = field(default_factory=dict)
    cross_topic_handlers: Dict[str, Callable[[str, Any], Any]] = field(default_factory=dict)
    related_topics: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    priority: float = 1.0
    sentiment_bias: Optional[float] = None
    default_responses: List[str] = field(default_factory=list)
    profile_extractors: List[Callable[[str, Dict[str, Any]], Dict[str, Any]]] = field(default_factory=list)
    memory_triggers: List[MemoryTrigger] = field(default_factory=list)
    follow_up_questions: List[str] = field(default_factory=list)
    deep_knowledge: Dict[str, str] = field(default_factory=dict)

    # Optional hooks; None means "use the default algorithm"
    match: Optional[Callable[..., Any]] = None
    generate_response: Optional[Callable[..., Any]] = None
    get_solution: Optional[Callable[..., str]] = None
    update_profile: Optional[Callable[..., Dict[str, Any]]] = None

    @property
    def display_name(self) -> str:
        return self.name.replace('_', ' ')

    def get_default_responses(self) -> List[str]:
        return self.default_responses or [f"Tell me more about {self.display_name}."]

    def pick_solution(self, input_text: str, context: Any, rng: random.Random) -> str:
        """Solution from the ``get_solution`` hook, else uniformly sampled from ``solutions``."""
        if self.get_solution is not None:
            solution = self.get_solution(input_text, context)
            if solution:
                return str(solution)
        if not self.solutions:
            return DEFAULT_SOLUTION
        return rng.choice(self.solutions)

    def explain(self, solution: str) -> Optional[str]:
        """Explanation whose key names (part of) the given solution."""
        solution_lower = solution.lower()
        for key, explanation in self.solution_explanations.items():
            key_lower = key.lower()
            if key_lower in solution_lower or solution_lower in key_lower:
                return explanation
        return None

    def explain_term(self, text: str) -> Optional[Tuple[str, str]]:
        """First ``deep_knowledge`` term mentioned in ``text``, with its explanation."""
        text_lower = text.lower()
        for term, explanation in self.deep_knowledge.items():
            if re.search(r"\b" + re.escape(term.lower()) + r"\b", text_lower):
                return term, explanation
        return None

    def extract_profile(self, input_text: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        """Profile updates from the ``update_profile`` hook or the declared extractors."""
        if self.update_profile is not None:
            return dict(self.update_profile(input_text, dict(profile)) or {})

        updates: Dict[str, Any] = {}
        for extractor in self.profile_extractors:
            updates.update(extractor(input_text, {**profile, **updates}) or {})
        return updates

    def fire_memory_triggers(self, input_text: str) -> List[Any]:
        """Data produced by every memory trigger whose pattern matches."""
        return [
            trigger.store(input_text)
            for trigger in self.memory_triggers
            if trigger.pattern.search(input_text)
        ]

    @classmethod
    def from_definition(cls, definition: Any, source: Optional[str] = None) -> "Topic":
        """
        Normalize a mapping or an object with attributes into a Topic.

        Raises:
            TopicLoadError: if the definition is malformed
        """
        if isinstance(definition, Topic):
            return definition

        def get(key: str, default: Any = None) -> Any:
            if isinstance(definition, dict):
                return definition.get(key, default)
            return getattr(definition, key, default)

        name = get('name')
        if not isinstance(name, str) or not name.strip():
            raise TopicLoadError("Topic definition requires a non-empty name", source=source)
        name = name.strip()

        try:
            patterns = [_build_pattern(p) for p in get('patterns') or []]
            triggers = [_build_trigger(t) for t in get('memory_triggers') or []]
        except re.error as e:
            raise TopicLoadError(f"Invalid regex in topic '{name}': {e}", topic_name=name, source=source)
        except (TypeError, KeyError, AttributeError) as e:
            raise TopicLoadError(f"Malformed pattern in topic '{name}': {e}", topic_name=name, source=source)

        handlers = dict(get('cross_topic_handlers') or {})
        for target, handler in handlers.items():
            if not callable(handler):
                raise TopicLoadError(
                    f"Cross-topic handler '{name}' -> '{target}' is not callable",
                    topic_name=name, source=source
                )

        hooks = {}
        for hook_name in HOOK_NAMES:
            hook = get(hook_name)
            if hook is not None and not callable(hook):
                raise TopicLoadError(f"Hook '{hook_name}' on topic '{name}' is not callable", topic_name=name, source=source)
            hooks[hook_name] = hook

        extractors = list(get('profile_extractors') or [])
        if not all(callable(e) for e in extractors):
            raise TopicLoadError(f"Profile extractors on topic '{name}' must be callable", topic_name=name, source=source)

        raw_priority = get('priority')
        sentiment_bias = get('sentiment_bias')
        try:
            priority = float(raw_priority) if raw_priority is not None else 1.0
            sentiment_bias = float(sentiment_bias) if sentiment_bias is not None else None
        except (TypeError, ValueError) as e:
            raise TopicLoadError(f"Invalid numeric field on topic '{name}': {e}", topic_name=name, source=source)

        return cls(
            name=name,
            description=get('description') or "",
            keywords=[str(k) for k in get('keywords') or []],
            patterns=patterns,
            solutions=[str(s) for s in get('solutions') or []],
            solution_explanations=dict(get('solution_explanations') or {}),
            cross_topic_handlers=handlers,
            related_topics=list(get('related_topics') or []),
            dependencies=list(get('dependencies') or []),
            priority=priority,
            sentiment_bias=sentiment_bias,
            default_responses=list(get('default_responses') or []),
            profile_extractors=extractors,
            memory_triggers=triggers,
            follow_up_questions=[str(q) for q in get('follow_up_questions') or []],
            deep_knowledge=_knowledge(get('deep_knowledge'), name, source),
            **hooks,
        )


def _compile(regex: Any) -> "re.Pattern[str]":
    if isinstance(regex, re.Pattern):
        return regex if regex.flags & re.IGNORECASE else re.compile(regex.pattern, regex.flags | re.IGNORECASE)
    return re.compile(str(regex), re.IGNORECASE)


def _build_pattern(raw: Any) -> Pattern:
    if isinstance(raw, Pattern):
        return raw
    if not isinstance(raw, dict):
        raise TypeError(f"pattern must be a mapping with a 'regex' key, got {type(raw).__name__}")
    transform = raw.get('transform')
    if transform is not None and not callable(transform):
        raise TypeError("pattern transform must be callable")
    return Pattern(
        regex=_compile(raw['regex']),
        responses=[str(r) for r in raw.get('responses') or []],
        transform=transform,
    )


def _build_trigger(raw: Any) -> MemoryTrigger:
    if isinstance(raw, MemoryTrigger):
        return raw
    if not isinstance(raw, dict):
        raise TypeError(f"memory trigger must be a mapping, got {type(raw).__name__}")
    if not callable(raw['store']):
        raise TypeError("memory trigger store must be callable")
    return MemoryTrigger(pattern=_compile(raw['pattern']), store=raw['store'])


def _knowledge(raw: Any, name: str, source: Optional[str]) -> Dict[str, str]:
    """Term explanations; entries may be plain strings or mappings with an ``explanation``."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TopicLoadError(f"deep_knowledge on topic '{name}' must be a mapping", topic_name=name, source=source)
    knowledge = {}
    for term, entry in raw.items():
        if isinstance(entry, dict):
            entry = entry.get('explanation')
        if entry:
            knowledge[str(term)] = str(entry)
    return knowledge


class TopicRegistry:
    """
    Name-keyed topic map. Mutable only until ``freeze()``; iteration
    order is registration order, which breaks scoring ties.
    """

    def __init__(self):
        self._topics: Dict[str, Topic] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, topic: Topic) -> None:
        if self._frozen:
            raise RuntimeError("Topic registry is frozen; register topics during the load phase")
        if topic.name in self._topics:
            raise TopicLoadError(f"Duplicate topic name: {topic.name}", topic_name=topic.name)
        self._topics[topic.name] = topic

    def freeze(self) -> "TopicRegistry":
        self._frozen = True
        return self

    def get(self, name: str) -> Optional[Topic]:
        return self._topics.get(name)

    def names(self) -> List[str]:
        return list(self._topics)

    def __contains__(self, name: object) -> bool:
        return name in self._topics

    def __iter__(self) -> Iterator[Topic]:
        return iter(list(self._topics.values()))

    def __len__(self) -> int:
        return len(self._topics)

    @classmethod
    def from_definitions(cls, definitions: Iterable[Any], freeze: bool = True) -> "TopicRegistry":
        """
        Normalize definitions and register them in dependency order.

        Invalid definitions and duplicates are logged and skipped. Topics
        whose dependencies never resolve are dropped with a warning.
        """
        registry = cls()
        pending: List[Topic] = []

        for definition in definitions:
            try:
                pending.append(Topic.from_definition(definition))
            except TopicLoadError as e:
                logger.error(f"Skipping topic: {e}")

        progress = True
        while pending and progress:
            progress = False
            remaining = []
            for topic in pending:
                if all(dep in registry for dep in topic.dependencies):
                    try:
                        registry.register(topic)
                        progress = True
                    except TopicLoadError as e:
                        logger.error(f"Skipping topic: {e}")
                else:
                    remaining.append(topic)
            pending = remaining

        for topic in pending:
            missing = [dep for dep in topic.dependencies if dep not in registry]
            logger.warning(f"Topic '{topic.name}' dropped, unresolved dependencies: {missing}")

        logger.info(f"Registered {len(registry)} topics: {registry.names()}")
        return registry.freeze() if freeze else registry


class TopicGraph:
    """Relatedness between topics from declared links and shared keywords."""

    def __init__(self, registry: TopicRegistry):
        self.registry = registry
        self._edges: Dict[str, Dict[str, float]] = {name: {} for name in registry.names()}
        self._build()

    def _build(self):
        topics = list(self.registry)
        keyword_sets = {t.name: {k.lower() for k in t.keywords} for t in topics}

        for topic in topics:
            for related in topic.related_topics:
                if related in self.registry and related != topic.name:
                    self._edges[topic.name][related] = self._edges[topic.name].get(related, 0.0) + 1.0

        for i, a in enumerate(topics):
            for b in topics[i + 1:]:
                shared = keyword_sets[a.name] & keyword_sets[b.name]
                if shared:
                    weight = 0.5 * len(shared)
                    self._edges[a.name][b.name] = self._edges[a.name].get(b.name, 0.0) + weight
                    self._edges[b.name][a.name] = self._edges[b.name].get(a.name, 0.0) + weight

    def related(self, name: str, limit: int = 3) -> List[str]:
        edges = self._edges.get(name, {})
        ranked = sorted(edges.items(), key=lambda item: -item[1])
        return [topic for topic, _ in ranked[:limit]]
