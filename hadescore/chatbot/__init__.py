"""
Chatbot Core Module
===================

Dialogue orchestration for HADES: topic matching, response generation
and blending, conversation context and memory.
"""

from .response import Response, ResponseType, coerce_response
from .topic import Topic, Pattern, MemoryTrigger, TopicRegistry, TopicGraph, TopicLoadError
from .topic_loader import TopicLoader, load_builtin_topics
from .text_analyzer import TextAnalyzer, TextAnalysis, LexiconTextAnalyzer
from .dialog_state import ContextManager, ConversationContext, ConversationPhase, DialogTurn
from .memory import MemoryStore, MemoryItem, MemoryType
from .matcher import TopicMatcher, MatchResult, MatchError
from .fallback_handler import FallbackHandler, FallbackType
from .response_generator import ResponseGenerator
from .response_blender import ResponseBlender
from .base_core import AgentCore, SessionManager, InvalidInputError

__version__ = "1.0.0"

__all__ = [
    'AgentCore',
    'SessionManager',
    'InvalidInputError',
    'Response',
    'ResponseType',
    'coerce_response',
    'Topic',
    'Pattern',
    'MemoryTrigger',
    'TopicRegistry',
    'TopicGraph',
    'TopicLoadError',
    'TopicLoader',
    'load_builtin_topics',
    'TextAnalyzer',
    'TextAnalysis',
    'LexiconTextAnalyzer',
    'ContextManager',
    'ConversationContext',
    'ConversationPhase',
    'DialogTurn',
    'MemoryStore',
    'MemoryItem',
    'MemoryType',
    'TopicMatcher',
    'MatchResult',
    'MatchError',
    'FallbackHandler',
    'FallbackType',
    'ResponseGenerator',
    'ResponseBlender',
]
