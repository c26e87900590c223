"""
Conversation Memory
===================

Per-session memory with three areas:

- short-term: fixed-capacity ring of recent turns, newest first
- episodic: relevance-weighted log of what happened, newest first
- long-term: flat key/value map

Episodic items that carry a topic are also indexed per topic. The
long-term map and the topic index are persisted together as one JSON
blob through a ``BlobStore``; writes are scheduled in the background so
a slow or failing store never delays a turn.
"""

import asyncio
import json
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set
import logging

from ..database.base import BlobStore, MemoryPersistenceError

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9]+")


class MemoryType(Enum):
    """Memory areas."""
    SHORT_TERM = "shortTerm"
    EPISODIC = "episodic"
    LONG_TERM = "longTerm"


@dataclass
class MemoryItem:
    """A remembered piece of data."""
    data: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    topic: Optional[str] = None
    relevance: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'topic': self.topic,
            'relevance': self.relevance,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MemoryItem":
        timestamp = raw.get('timestamp')
        return cls(
            data=raw.get('data'),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc),
            topic=raw.get('topic'),
            relevance=float(raw.get('relevance', 1.0)),
        )

    def words(self) -> Set[str]:
        if isinstance(self.data, str):
            text = self.data
        else:
            text = json.dumps(self.data, default=str)
        return set(_WORD.findall(text.lower()))


class MemoryStore:
    """Owns all memory collections for one session."""

    def __init__(self, short_term_capacity: int = 10, episodic_capacity: Optional[int] = None,
                 blob_store: Optional[BlobStore] = None, blob_key: str = "memory"):
        if short_term_capacity < 1:
            raise ValueError("short_term_capacity must be at least 1")

        self.short_term_capacity = short_term_capacity
        self.episodic_capacity = episodic_capacity
        self.blob_store = blob_store
        self.blob_key = blob_key

        self.short_term: Deque[MemoryItem] = deque(maxlen=short_term_capacity)
        self.episodic: List[MemoryItem] = []
        self.long_term: Dict[str, MemoryItem] = {}
        self.topic_memories: Dict[str, List[MemoryItem]] = {}

        self._pending: Set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._write_seq = 0
        self._written_seq = 0

        self.metrics = {
            'items_stored': 0,
            'persist_writes': 0,
            'persist_failures': 0,
        }

    # -- storing --------------------------------------------------------

    def store(self, memory_type: MemoryType, data: Any, topic: Optional[str] = None,
              relevance: float = 1.0, key: Optional[str] = None) -> MemoryItem:
        """
        Store data in one memory area.

        Long-term entries need a ``key``. Items with a topic are also
        indexed under that topic and trigger a background persist.
        """
        item = MemoryItem(data=data, topic=topic, relevance=relevance)
        persist = False

        if memory_type == MemoryType.SHORT_TERM:
            self.short_term.appendleft(item)
        elif memory_type == MemoryType.EPISODIC:
            self.episodic.insert(0, item)
            if self.episodic_capacity is not None:
                del self.episodic[self.episodic_capacity:]
        elif memory_type == MemoryType.LONG_TERM:
            if not key:
                raise ValueError("Long-term memories require a key")
            self.long_term[key] = item
            persist = True

        if topic and memory_type != MemoryType.SHORT_TERM:
            memories = self.topic_memories.setdefault(topic, [])
            memories.insert(0, item)
            if self.episodic_capacity is not None:
                del memories[self.episodic_capacity:]
            persist = True

        self.metrics['items_stored'] += 1
        if persist:
            self.schedule_persist()
        return item

    def remember(self, key: str, value: Any, topic: Optional[str] = None) -> MemoryItem:
        return self.store(MemoryType.LONG_TERM, value, topic=topic, key=key)

    def get_long_term(self, key: str, default: Any = None) -> Any:
        item = self.long_term.get(key)
        return item.data if item else default

    def forget(self, key: str) -> bool:
        if key in self.long_term:
            del self.long_term[key]
            self.schedule_persist()
            return True
        return False

    # -- recall ---------------------------------------------------------

    def _items_of(self, memory_type: MemoryType) -> Iterable[MemoryItem]:
        if memory_type == MemoryType.SHORT_TERM:
            return list(self.short_term)
        if memory_type == MemoryType.EPISODIC:
            return list(self.episodic)
        return list(self.long_term.values())

    def recall(self, memory_type: MemoryType, topic: Optional[str] = None, min_relevance: float = 0.3,
               max_items: int = 5, filter_fn: Optional[Callable[[MemoryItem], bool]] = None) -> List[MemoryItem]:
        """Most recent items of a type, optionally restricted to a topic."""
        results = []
        for item in self._items_of(memory_type):
            if topic is not None and item.topic != topic:
                continue
            if item.relevance < min_relevance:
                continue
            if filter_fn is not None and not filter_fn(item):
                continue
            results.append(item)
            if len(results) >= max_items:
                break
        return results

    def find_related(self, query: str, topics: Optional[Iterable[str]] = None,
                     min_relevance: float = 0.4, max_items: int = 3) -> List[MemoryItem]:
        """
        Episodic and topic memories sharing words with ``query``.

        Score is the fraction of query words found in the item, times the
        item's relevance, boosted 1.2x for items of the given topics.
        """
        query_words = set(_WORD.findall(query.lower()))
        if not query_words:
            return []
        boosted = set(topics or [])

        candidates: Dict[int, MemoryItem] = {id(item): item for item in self.episodic}
        for items in self.topic_memories.values():
            for item in items:
                candidates.setdefault(id(item), item)

        scored = []
        for item in candidates.values():
            overlap = len(query_words & item.words()) / len(query_words)
            score = overlap * item.relevance
            if item.topic in boosted:
                score *= 1.2
            if score >= min_relevance:
                scored.append((score, item))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [item for _, item in scored[:max_items]]

    def summarize_recent(self, count: int = 5, width: int = 50) -> List[Dict[str, Any]]:
        """Newest short-term items as timestamp plus a shortened input."""
        summaries = []
        for item in list(self.short_term)[:count]:
            if isinstance(item.data, dict) and isinstance(item.data.get('input'), str):
                text = item.data['input']
            elif isinstance(item.data, str):
                text = item.data
            else:
                text = "Data entry"
            if len(text) > width:
                text = text[:width].rstrip() + "..."
            summaries.append({'time': item.timestamp.isoformat(), 'summary': text})
        return summaries

    def recent_sentiment_average(self, count: int = 3) -> float:
        """Mean sentiment of the newest short-term items that carry one."""
        values = []
        for item in self.short_term:
            sentiment = item.data.get('sentiment') if isinstance(item.data, dict) else None
            if isinstance(sentiment, (int, float)):
                values.append(float(sentiment))
            if len(values) >= count:
                break
        return sum(values) / len(values) if values else 0.0

    # -- persistence ----------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            'longTerm': {key: item.to_dict() for key, item in self.long_term.items()},
            'topicMemories': [
                [name, [item.to_dict() for item in items]]
                for name, items in self.topic_memories.items()
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.snapshot(), default=str)

    def restore(self, blob: str):
        """
        Replace long-term and topic memories from a persisted blob.

        Raises:
            MemoryPersistenceError: if the blob is not a valid memory document
        """
        try:
            raw = json.loads(blob)
            long_term = {key: MemoryItem.from_dict(item) for key, item in (raw.get('longTerm') or {}).items()}
            topic_memories = {
                name: [MemoryItem.from_dict(item) for item in items][:self.episodic_capacity]
                for name, items in raw.get('topicMemories') or []
            }
        except (ValueError, TypeError, AttributeError) as e:
            raise MemoryPersistenceError(f"Corrupt memory blob: {e}", original_error=e)

        self.long_term = long_term
        self.topic_memories = topic_memories

    async def load(self) -> bool:
        """Load persisted memory; failures are logged and leave memory empty."""
        if self.blob_store is None:
            return False
        try:
            blob = await self.blob_store.read(self.blob_key)
            if blob is None:
                return False
            self.restore(blob)
        except MemoryPersistenceError as e:
            logger.error(f"Failed to load memory '{self.blob_key}': {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error loading memory '{self.blob_key}': {e}", exc_info=True)
            return False

        logger.info(f"Loaded memory '{self.blob_key}': {len(self.long_term)} long-term entries, "
                    f"{len(self.topic_memories)} topics")
        return True

    def schedule_persist(self):
        """Queue a background write of the current snapshot."""
        if self.blob_store is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; memory persist skipped")
            return

        self._write_seq += 1
        task = loop.create_task(self._write(self._write_seq, self.to_json()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def persist(self) -> bool:
        """Write the current snapshot now."""
        if self.blob_store is None:
            return False
        self._write_seq += 1
        return await self._write(self._write_seq, self.to_json())

    async def _write(self, seq: int, blob: str) -> bool:
        async with self._write_lock:
            if seq <= self._written_seq:
                return True
            try:
                await self.blob_store.write(self.blob_key, blob)
            except Exception as e:
                self.metrics['persist_failures'] += 1
                logger.error(f"Memory persistence failed for '{self.blob_key}': {e}")
                return False
            self._written_seq = seq
            self.metrics['persist_writes'] += 1
            return True

    async def flush(self):
        """Wait for all scheduled writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'short_term': len(self.short_term),
            'episodic': len(self.episodic),
            'long_term': len(self.long_term),
            'topics': len(self.topic_memories),
            **self.metrics,
        }
