"""Conversation memory and the rule-based readers that fill it."""

from src.context.clarify import ClarificationGate
from src.context.classify import QueryClassifier, QueryType
from src.context.extractor import ContextExtractor, DayInfo
from src.context.memory import ConversationMemory, InMemoryStore, MemoryStore, Message

__all__ = [
    "ClarificationGate",
    "ContextExtractor",
    "ConversationMemory",
    "DayInfo",
    "InMemoryStore",
    "MemoryStore",
    "Message",
    "QueryClassifier",
    "QueryType",
]
