"""Per-conversation memory and the store that owns it."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime

from src.config import settings

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class Message:
    """A single conversation turn. Immutable once created."""

    role: str
    text: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")


@dataclass
class UserPreferences:
    budget: str | None = None  # "budget", "moderate" or "luxury"
    interests: set[str] = field(default_factory=set)
    dietary: set[str] = field(default_factory=set)

    @property
    def captured(self) -> bool:
        return bool(self.budget or self.interests or self.dietary)

    def to_dict(self) -> dict:
        return {
            "budget": self.budget,
            "interests": sorted(self.interests),
            "dietary": sorted(self.dietary),
        }


@dataclass
class TripPlan:
    """A trip draft picked up from the conversation."""

    destination: str
    purpose: str | None = None
    budget_amount: int | None = None
    days_ahead: int | None = None


@dataclass
class ConversationMemory:
    """Everything remembered about one conversation.

    Attributes:
        messages: Ordered, append-only history.
        preferences: Merged user preferences; tags are never removed.
        mentioned_locations: Insertion-ordered, append-only set of places.
        planned_trips: Trip drafts, latest last.
    """

    conversation_id: str
    messages: list[Message] = field(default_factory=list)
    preferences: UserPreferences = field(default_factory=UserPreferences)
    mentioned_locations: dict[str, None] = field(default_factory=dict)
    planned_trips: list[TripPlan] = field(default_factory=list)
    created_at: float = field(default_factory=time.monotonic)
    last_active: float = field(default_factory=time.monotonic)

    def add_location(self, location: str) -> bool:
        """Record a location. Returns True if it was new."""
        if location in self.mentioned_locations:
            return False
        self.mentioned_locations[location] = None
        return True

    @property
    def locations(self) -> list[str]:
        return list(self.mentioned_locations)

    def recent(self, count: int) -> list[Message]:
        return self.messages[-count:] if count > 0 else []


# -- Store -------------------------------------------------------------------


class MemoryStore(ABC):
    """Where conversation memories live.

    The store also hands out one ``asyncio.Lock`` per conversation id so
    callers can serialize read-modify-write cycles for that id.
    """

    @abstractmethod
    def get(self, conversation_id: str) -> ConversationMemory | None:
        """Return the memory for an id, or None if unknown."""

    @abstractmethod
    def get_or_create(self, conversation_id: str) -> ConversationMemory:
        """Return the memory for an id, creating it on first use."""

    @abstractmethod
    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Return the lock guarding an id."""

    @abstractmethod
    def __len__(self) -> int: ...


class InMemoryStore(MemoryStore):
    """Process-local store with idle TTL and a max-conversations LRU cap.

    Conversations whose lock is held are never evicted.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_conversations: int | None = None,
        clock=time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.memory_ttl_seconds
        self.max_conversations = (
            max_conversations
            if max_conversations is not None
            else settings.memory_max_conversations
        )
        self._clock = clock
        self._memories: OrderedDict[str, ConversationMemory] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._memories)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._memories

    def _is_busy(self, conversation_id: str) -> bool:
        lock = self._locks.get(conversation_id)
        return lock is not None and lock.locked()

    def _drop(self, conversation_id: str, reason: str) -> None:
        self._memories.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)
        logger.info("Evicted conversation %s (%s)", conversation_id, reason)

    def evict(self, keep: str | None = None) -> int:
        """Apply the TTL and size limits. Returns the number evicted."""
        now = self._clock()
        evicted = 0
        if self.ttl_seconds > 0:
            expired = [
                cid
                for cid, mem in self._memories.items()
                if now - mem.last_active > self.ttl_seconds
                and cid != keep
                and not self._is_busy(cid)
            ]
            for cid in expired:
                self._drop(cid, "idle")
                evicted += 1
        if self.max_conversations > 0:
            for cid in list(self._memories):
                if len(self._memories) <= self.max_conversations:
                    break
                if cid == keep or self._is_busy(cid):
                    continue
                self._drop(cid, "capacity")
                evicted += 1
        return evicted

    def get(self, conversation_id: str) -> ConversationMemory | None:
        memory = self._memories.get(conversation_id)
        if memory is None:
            return None
        if self.ttl_seconds > 0 and self._clock() - memory.last_active > self.ttl_seconds:
            if not self._is_busy(conversation_id):
                self._drop(conversation_id, "idle")
                return None
        return memory

    def get_or_create(self, conversation_id: str) -> ConversationMemory:
        memory = self.get(conversation_id)
        if memory is None:
            memory = ConversationMemory(
                conversation_id=conversation_id,
                created_at=self._clock(),
                last_active=self._clock(),
            )
            self._memories[conversation_id] = memory
            logger.debug("Created conversation %s", conversation_id)
        else:
            memory.last_active = self._clock()
        self._memories.move_to_end(conversation_id)
        self.evict(keep=conversation_id)
        return memory

    def lock(self, conversation_id: str) -> asyncio.Lock:
        if conversation_id not in self._locks:
            self._locks[conversation_id] = asyncio.Lock()
        return self._locks[conversation_id]
