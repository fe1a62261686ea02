"""
Bounded LRU Map
容量受限的 LRU 映射

In-memory mapping capped at a fixed number of entries.
Backs the rate limiter windows and the anti-forgery token store.

Features:
- Thread-safe operations with Lock
- Access-order eviction: reads and writes both count as access
- Hash index plus explicit doubly-linked list, O(1) per operation
- Evicts exactly one least-recently-used entry per overflowing insert
"""

from threading import Lock
from typing import Any, Dict, Generic, Hashable, Iterator, List, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


class _Node:
    """Linked list node"""

    __slots__ = ("key", "value", "prev", "next")

    def __init__(self, key: Any = None, value: Any = None):
        self.key = key
        self.value = value
        self.prev: Optional["_Node"] = None
        self.next: Optional["_Node"] = None


class BoundedLRUMap(Generic[K, V]):
    """
    Capacity-bounded map with least-recently-used eviction
    容量受限的 LRU 映射

    List layout: head <-> oldest ... newest <-> tail (sentinels).
    """

    def __init__(self, capacity: int):
        """
        Initialize map

        Args:
            capacity: Maximum number of entries to keep
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self._capacity = capacity
        self._index: Dict[K, _Node] = {}
        self._lock = Lock()
        self._evictions = 0

        self._head = _Node()
        self._tail = _Node()
        self._head.next = self._tail
        self._tail.prev = self._head

    # ============================================
    # Linked list helpers (assume lock held)
    # ============================================

    def _unlink(self, node: _Node) -> None:
        node.prev.next = node.next
        node.next.prev = node.prev
        node.prev = node.next = None

    def _append(self, node: _Node) -> None:
        last = self._tail.prev
        last.next = node
        node.prev = last
        node.next = self._tail
        self._tail.prev = node

    def _touch(self, node: _Node) -> None:
        """Move node to the most-recently-used end"""
        if node.next is self._tail:
            return
        self._unlink(node)
        self._append(node)

    # ============================================
    # Mapping operations
    # ============================================

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """
        Get value and mark it most recently used

        Absent keys return default without side effects.
        """
        with self._lock:
            node = self._index.get(key)
            if node is None:
                return default
            self._touch(node)
            return node.value

    def peek(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """Get value without changing its recency"""
        with self._lock:
            node = self._index.get(key)
            return default if node is None else node.value

    def set(self, key: K, value: V) -> Optional[Tuple[K, V]]:
        """
        Insert or replace value and mark it most recently used

        Returns:
            The evicted (key, value) pair, or None if nothing was evicted
        """
        with self._lock:
            node = self._index.get(key)
            if node is not None:
                node.value = value
                self._touch(node)
                return None

            node = _Node(key, value)
            self._index[key] = node
            self._append(node)

            if len(self._index) > self._capacity:
                oldest = self._head.next
                self._unlink(oldest)
                del self._index[oldest.key]
                self._evictions += 1
                return oldest.key, oldest.value
            return None

    def pop(self, key: K, default: Any = _MISSING) -> Any:
        """Remove key and return its value"""
        with self._lock:
            node = self._index.pop(key, None)
            if node is None:
                if default is _MISSING:
                    raise KeyError(key)
                return default
            self._unlink(node)
            return node.value

    def delete(self, key: K) -> bool:
        """
        Delete entry

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            node = self._index.pop(key, None)
            if node is None:
                return False
            self._unlink(node)
            return True

    def clear(self) -> int:
        """
        Remove every entry

        Returns:
            Number of entries removed
        """
        with self._lock:
            count = len(self._index)
            self._index.clear()
            self._head.next = self._tail
            self._tail.prev = self._head
            return count

    def items(self) -> List[Tuple[K, V]]:
        """Snapshot of entries from least to most recently used"""
        with self._lock:
            result = []
            node = self._head.next
            while node is not self._tail:
                result.append((node.key, node.value))
                node = node.next
            return result

    def keys(self) -> List[K]:
        return [key for key, _ in self.items()]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._index

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    def __iter__(self) -> Iterator[K]:
        return iter(self.keys())

    @property
    def capacity(self) -> int:
        return self._capacity

    def stats(self) -> Dict[str, Any]:
        """
        Get map statistics
        获取统计信息
        """
        with self._lock:
            return {
                "total_entries": len(self._index),
                "max_entries": self._capacity,
                "evictions": self._evictions,
            }
