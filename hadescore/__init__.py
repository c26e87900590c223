"""
HADES
=====

Rule-based dialogue agent: hand-authored topics answer what they can,
external language-model providers answer the rest.

Quick Start:
    from hadescore import AgentCore, get_settings

    agent = AgentCore.from_settings(get_settings())
    await agent.initialize()
    response = await agent.process_input("I need help with savings")
    print(response.text)
"""

# chatbot is imported before llm: the provider chain builds chatbot responses
from .chatbot import AgentCore, SessionManager, Response, ResponseType, load_builtin_topics
from .config import Settings, get_settings
from .llm import AIFallbackOrchestrator

__version__ = "1.0.0"

__all__ = [
    'AgentCore',
    'SessionManager',
    'Response',
    'ResponseType',
    'load_builtin_topics',
    'Settings',
    'get_settings',
    'AIFallbackOrchestrator',
]
