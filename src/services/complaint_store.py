"""Complaint record store with an in-memory and a Redis backend.

The store is the single source of truth for complaint documents.  Both
backends implement the same :class:`ComplaintStore` protocol:

* ``insert`` writes a brand-new record.
* ``replace`` is a compare-and-swap on the record's ``version``: the
  write only lands if the stored version still equals the version the
  caller read, and the stored copy gets ``version + 1``.  A mismatch
  raises :class:`ConflictError` so concurrent transitions on the same
  complaint cannot silently overwrite each other.
* ``find`` / ``count`` evaluate a :class:`ComplaintQuery` filter.

Records are copied on the way in and out so callers never share mutable
state with the store.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

import orjson
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.models.complaint import Complaint, is_public_complaint_id
from src.models.enums import ComplaintCategory, ComplaintStatus
from src.services.errors import ComplaintNotFoundError, ConflictError, PersistenceError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Query filter
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ComplaintQuery:
    """Conjunctive filter over complaint records.

    Deadline bounds: ``deadline_from`` and ``deadline_to`` are inclusive,
    ``deadline_before`` is exclusive.
    """

    statuses: frozenset[ComplaintStatus] | None = None
    exclude_statuses: frozenset[ComplaintStatus] = frozenset()
    category: ComplaintCategory | None = None
    created_by: str | None = None
    assigned_to: str | None = None
    assigned_only: bool = False
    deadline_from: datetime | None = None
    deadline_to: datetime | None = None
    deadline_before: datetime | None = None

    def matches(self, complaint: Complaint) -> bool:
        if self.statuses is not None and complaint.status not in self.statuses:
            return False
        if complaint.status in self.exclude_statuses:
            return False
        if self.category is not None and complaint.category != self.category:
            return False
        if self.created_by is not None and complaint.created_by != self.created_by:
            return False
        if self.assigned_to is not None and complaint.assigned_to != self.assigned_to:
            return False
        if self.assigned_only and not complaint.assigned_to:
            return False
        if self.deadline_from is not None and complaint.sla_deadline < self.deadline_from:
            return False
        if self.deadline_to is not None and complaint.sla_deadline > self.deadline_to:
            return False
        if self.deadline_before is not None and complaint.sla_deadline >= self.deadline_before:
            return False
        return True


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ComplaintStore(Protocol):
    """Async complaint persistence interface."""

    async def next_sequence(self) -> int: ...

    async def insert(self, complaint: Complaint) -> Complaint: ...

    async def get(self, ref: str) -> Complaint | None: ...

    async def replace(self, complaint: Complaint, *, expected_version: int) -> Complaint: ...

    async def find(
        self,
        query: ComplaintQuery | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Complaint]: ...

    async def count(self, query: ComplaintQuery | None = None) -> int: ...


def _newest_first(complaints: list[Complaint]) -> list[Complaint]:
    return sorted(complaints, key=lambda c: c.created_at, reverse=True)


def _page(complaints: list[Complaint], offset: int, limit: int | None) -> list[Complaint]:
    if limit is None:
        return complaints[offset:]
    return complaints[offset : offset + limit]


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryComplaintStore:
    """Dict-backed store guarded by an :class:`asyncio.Lock`.

    Sufficient for single-process deployments and tests.  The sequence
    counter only ever increases, so public complaint IDs are never
    reused even if a record were removed out-of-band.
    """

    __slots__ = ("_by_public_id", "_lock", "_records", "_sequence")

    def __init__(self) -> None:
        self._records: dict[str, Complaint] = {}
        self._by_public_id: dict[str, str] = {}
        self._sequence = 0
        self._lock = asyncio.Lock()

    async def next_sequence(self) -> int:
        async with self._lock:
            self._sequence += 1
            return self._sequence

    async def insert(self, complaint: Complaint) -> Complaint:
        async with self._lock:
            if complaint.record_id in self._records or complaint.complaint_id in self._by_public_id:
                raise PersistenceError(
                    f"Complaint {complaint.complaint_id} already exists",
                    complaint_ref=complaint.complaint_id,
                )
            stored = complaint.model_copy(deep=True)
            self._records[stored.record_id] = stored
            self._by_public_id[stored.complaint_id] = stored.record_id
            return stored.model_copy(deep=True)

    async def get(self, ref: str) -> Complaint | None:
        async with self._lock:
            record_id = self._by_public_id.get(ref) if is_public_complaint_id(ref) else ref
            if record_id is None:
                return None
            found = self._records.get(record_id)
            return found.model_copy(deep=True) if found is not None else None

    async def replace(self, complaint: Complaint, *, expected_version: int) -> Complaint:
        async with self._lock:
            current = self._records.get(complaint.record_id)
            if current is None:
                raise ComplaintNotFoundError(complaint.complaint_id)
            if current.version != expected_version:
                raise ConflictError(
                    complaint.complaint_id,
                    expected=expected_version,
                    actual=current.version,
                )
            stored = complaint.model_copy(deep=True, update={"version": expected_version + 1})
            self._records[stored.record_id] = stored
            return stored.model_copy(deep=True)

    async def find(
        self,
        query: ComplaintQuery | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Complaint]:
        query = query or ComplaintQuery()
        async with self._lock:
            matched = [c for c in self._records.values() if query.matches(c)]
        return [c.model_copy(deep=True) for c in _page(_newest_first(matched), offset, limit)]

    async def count(self, query: ComplaintQuery | None = None) -> int:
        query = query or ComplaintQuery()
        async with self._lock:
            return sum(1 for c in self._records.values() if query.matches(c))

    @property
    def size(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


def _dump(complaint: Complaint) -> bytes:
    return orjson.dumps(complaint.model_dump(mode="json"))


def _load(raw: bytes) -> Complaint:
    return Complaint.model_validate(orjson.loads(raw))


# Applied to reads only; writes are never retried.
_read_retry = retry(
    retry=retry_if_exception_type(PersistenceError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    reraise=True,
)


class RedisComplaintStore:
    """Redis-backed store using ``redis.asyncio`` with connection pooling.

    Layout (all keys prefixed by *namespace*):

    * ``complaint:<record_id>`` -- orjson document
    * ``public:<complaint_id>`` -- record id lookup
    * ``index`` -- sorted set of record ids scored by creation time
    * ``sequence`` -- monotonic counter for public IDs

    ``replace`` uses WATCH/MULTI so the version check and the write are a
    single optimistic transaction.
    """

    __slots__ = ("_namespace", "_pool", "_redis")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "civictrack:",
        max_connections: int = 20,
    ) -> None:
        import redis.asyncio as aioredis

        self._namespace = namespace
        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    # -- keys ------------------------------------------------------------------

    def _record_key(self, record_id: str) -> str:
        return f"{self._namespace}complaint:{record_id}"

    def _public_key(self, complaint_id: str) -> str:
        return f"{self._namespace}public:{complaint_id}"

    @property
    def _index_key(self) -> str:
        return f"{self._namespace}index"

    @property
    def _sequence_key(self) -> str:
        return f"{self._namespace}sequence"

    # -- ComplaintStore interface ---------------------------------------------

    async def next_sequence(self) -> int:
        from redis.exceptions import RedisError

        try:
            return int(await self._redis.incr(self._sequence_key))
        except RedisError as exc:
            raise PersistenceError("Could not allocate a complaint sequence number") from exc

    async def insert(self, complaint: Complaint) -> Complaint:
        from redis.exceptions import RedisError

        record_key = self._record_key(complaint.record_id)
        try:
            if await self._redis.exists(record_key, self._public_key(complaint.complaint_id)):
                raise PersistenceError(
                    f"Complaint {complaint.complaint_id} already exists",
                    complaint_ref=complaint.complaint_id,
                )
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(record_key, _dump(complaint))
                pipe.set(self._public_key(complaint.complaint_id), complaint.record_id)
                pipe.zadd(self._index_key, {complaint.record_id: complaint.created_at.timestamp()})
                await pipe.execute()
        except RedisError as exc:
            logger.error("complaint_store.redis_insert_failed", complaint_id=complaint.complaint_id)
            raise PersistenceError(
                f"Could not store complaint {complaint.complaint_id}",
                complaint_ref=complaint.complaint_id,
            ) from exc
        return complaint.model_copy(deep=True)

    @_read_retry
    async def get(self, ref: str) -> Complaint | None:
        from redis.exceptions import RedisError

        try:
            record_id: str | bytes | None = ref
            if is_public_complaint_id(ref):
                record_id = await self._redis.get(self._public_key(ref))
                if record_id is None:
                    return None
            if isinstance(record_id, bytes):
                record_id = record_id.decode()
            raw = await self._redis.get(self._record_key(record_id))
        except RedisError as exc:
            raise PersistenceError(f"Could not read complaint {ref}", complaint_ref=ref) from exc
        return _load(raw) if raw is not None else None

    async def replace(self, complaint: Complaint, *, expected_version: int) -> Complaint:
        from redis.exceptions import RedisError, WatchError

        key = self._record_key(complaint.record_id)
        stored = complaint.model_copy(deep=True, update={"version": expected_version + 1})
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    raise ComplaintNotFoundError(complaint.complaint_id)
                current_version = _load(raw).version
                if current_version != expected_version:
                    raise ConflictError(
                        complaint.complaint_id,
                        expected=expected_version,
                        actual=current_version,
                    )
                pipe.multi()
                pipe.set(key, _dump(stored))
                await pipe.execute()
        except WatchError:
            raise ConflictError(complaint.complaint_id, expected=expected_version, actual=None) from None
        except RedisError as exc:
            logger.error("complaint_store.redis_replace_failed", complaint_id=complaint.complaint_id)
            raise PersistenceError(
                f"Could not update complaint {complaint.complaint_id}",
                complaint_ref=complaint.complaint_id,
            ) from exc
        return stored

    @_read_retry
    async def _load_all(self) -> list[Complaint]:
        from redis.exceptions import RedisError

        try:
            record_ids = await self._redis.zrevrange(self._index_key, 0, -1)
            if not record_ids:
                return []
            keys = [self._record_key(rid.decode() if isinstance(rid, bytes) else rid) for rid in record_ids]
            raws = await self._redis.mget(keys)
        except RedisError as exc:
            raise PersistenceError("Could not scan complaints") from exc
        return [_load(raw) for raw in raws if raw is not None]

    async def find(
        self,
        query: ComplaintQuery | None = None,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Complaint]:
        query = query or ComplaintQuery()
        matched = [c for c in await self._load_all() if query.matches(c)]
        return _page(_newest_first(matched), offset, limit)

    async def count(self, query: ComplaintQuery | None = None) -> int:
        query = query or ComplaintQuery()
        return sum(1 for c in await self._load_all() if query.matches(c))

    # -- Lifecycle -------------------------------------------------------------

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    async def close(self) -> None:
        with contextlib.suppress(Exception):
            await self._redis.aclose()
            await self._pool.aclose()
