"""
store.py — Document store contract and typed repositories

DocumentStore is the narrow key/value collection interface the engine consumes:
  get / set (full replace) / delete / delete_many (atomic per call) /
  query (equality + range filters, ordering, limit / start_after paging)

Implementations:
  - MemoryStore:    dict-backed, used by tests and dry runs
  - JsonFileStore:  single JSON file, rewritten after every mutation

Repositories convert between raw documents and typed records, validating
shape at the boundary (ScheduleFormatError on malformed documents):

  onCallDays/{YYYY-MM-DD}:
    {"id", "dateKey", "date": "YYYY-MM-DDT00:00:00",
     "stations": {key: {"userId", "userDisplayName"}}, "createdAt"}

No operation here spans more than one call: delete-then-write and
write-then-delete sequences built on top are not atomic.
"""

import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from oncall.config import ALIASES_COLLECTION, DAYS_COLLECTION, USERS_COLLECTION
from oncall.models import (
    ScheduleDay,
    ScheduleFormatError,
    StationAssignment,
    StoreError,
    UserIdentity,
    parse_date_key,
    to_date_key,
)
from oncall.stations import is_station_key

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Filter = Tuple[str, str, Any]          # (field, op, value), op in == < <= > >=

_OPS = {
    "==": lambda a, b: a == b,
    "<":  lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">":  lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}

DEFAULT_PAGE_SIZE = 400


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class DocumentStore(ABC):

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, doc: Document) -> None:
        """Idempotent full replace."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def delete_many(self, collection: str, doc_ids: Sequence[str]) -> None:
        """Delete several documents in one atomic call (one page)."""

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        start_after: Any = None,
    ) -> List[Tuple[str, Document]]:
        """Return one page of (doc_id, doc) pairs."""


def iter_query(
    store: DocumentStore,
    collection: str,
    filters: Sequence[Filter] = (),
    order_by: str = "id",
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Iterator[Tuple[str, Document]]:
    """Walk every page of a query, ordered by `order_by`."""
    cursor: Any = None
    while True:
        page = store.query(collection, filters, order_by=order_by, limit=page_size, start_after=cursor)
        for item in page:
            yield item
        if len(page) < page_size:
            return
        doc_id, doc = page[-1]
        cursor = doc_id if order_by == "id" else doc.get(order_by)


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class MemoryStore(DocumentStore):

    def __init__(self, data: Optional[Dict[str, Dict[str, Document]]] = None):
        self._data: Dict[str, Dict[str, Document]] = copy.deepcopy(data) if data else {}

    def _collection(self, collection: str) -> Dict[str, Document]:
        return self._data.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._data.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, doc: Document) -> None:
        if not doc_id:
            raise StoreError(f"Empty document id in {collection}")
        self._collection(collection)[doc_id] = copy.deepcopy(doc)
        self._persist()

    def delete(self, collection: str, doc_id: str) -> None:
        self._data.get(collection, {}).pop(doc_id, None)
        self._persist()

    def delete_many(self, collection: str, doc_ids: Sequence[str]) -> None:
        coll = self._data.get(collection, {})
        for doc_id in doc_ids:
            coll.pop(doc_id, None)
        self._persist()

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        start_after: Any = None,
    ) -> List[Tuple[str, Document]]:
        items = list(self._data.get(collection, {}).items())
        for field_name, op, value in filters:
            if op not in _OPS:
                raise StoreError(f"Unsupported query operator: {op}")
            check = _OPS[op]
            items = [
                (doc_id, doc) for doc_id, doc in items
                if field_name in doc and doc[field_name] is not None and check(doc[field_name], value)
            ]

        def sort_key(item: Tuple[str, Document]) -> Any:
            doc_id, doc = item
            return doc_id if order_by in (None, "id") else (doc.get(order_by) is None, doc.get(order_by), doc_id)

        items.sort(key=sort_key)
        if start_after is not None:
            if order_by in (None, "id"):
                items = [it for it in items if it[0] > start_after]
            else:
                items = [it for it in items if it[1].get(order_by) is not None and it[1][order_by] > start_after]
        if limit is not None:
            items = items[:limit]
        return [(doc_id, copy.deepcopy(doc)) for doc_id, doc in items]

    def _persist(self) -> None:
        pass

    def dump(self) -> Dict[str, Dict[str, Document]]:
        return copy.deepcopy(self._data)


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------

class JsonFileStore(MemoryStore):
    """MemoryStore persisted to one JSON file; every mutation rewrites it."""

    def __init__(self, path: Path):
        self.path = Path(path)
        data: Dict[str, Dict[str, Document]] = {}
        if self.path.exists():
            try:
                with open(self.path, encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise StoreError(f"Store file {self.path} is not valid JSON: {e}")
            logger.info(f"Opened store {self.path}: " + ", ".join(f"{k}={len(v)}" for k, v in data.items()))
        else:
            logger.warning(f"Store file not found: {self.path}. Starting empty.")
        super().__init__(data)

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Failed to write store {self.path}: {e}")


# ---------------------------------------------------------------------------
# Schedule days
# ---------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def day_to_doc(day: ScheduleDay) -> Document:
    key = day.date_key
    created = day.created_at or _now()
    return {
        "id": key,
        "dateKey": key,
        "date": datetime(day.date.year, day.date.month, day.date.day).isoformat(),
        "stations": {k: a.to_doc() for k, a in day.stations.items()},
        "createdAt": created.isoformat(),
    }


def _assignment_from_doc(doc_id: str, station: str, raw: Any) -> StationAssignment:
    if not isinstance(raw, dict):
        raise ScheduleFormatError(f"{doc_id}: station {station!r} is not a mapping")
    ref = raw.get("userId")
    name = raw.get("userDisplayName")
    if not isinstance(ref, str) or not ref.strip():
        raise ScheduleFormatError(f"{doc_id}: station {station!r} has no userId")
    if name is None:
        name = ref
    if not isinstance(name, str):
        raise ScheduleFormatError(f"{doc_id}: station {station!r} has a non-string userDisplayName")
    return StationAssignment(occupant_ref=ref, display_name=name)


def day_from_doc(doc_id: str, doc: Any) -> ScheduleDay:
    """Validate a raw onCallDays document and build a ScheduleDay."""
    if not isinstance(doc, dict):
        raise ScheduleFormatError(f"{doc_id}: document is not a mapping")

    key = doc.get("dateKey", doc_id)
    day_date = parse_date_key(key)
    if key != doc_id:
        raise ScheduleFormatError(f"{doc_id}: dateKey {key!r} does not match document id")

    raw_date = doc.get("date")
    if raw_date is not None:
        try:
            stamped = datetime.fromisoformat(str(raw_date))
        except ValueError:
            raise ScheduleFormatError(f"{doc_id}: unparseable date {raw_date!r}")
        if to_date_key(stamped.date()) != key:
            raise ScheduleFormatError(f"{doc_id}: date {raw_date!r} disagrees with dateKey {key!r}")

    stations_raw = doc.get("stations") or {}
    if not isinstance(stations_raw, dict):
        raise ScheduleFormatError(f"{doc_id}: stations is not a mapping")
    stations: Dict[str, StationAssignment] = {}
    for station, raw in stations_raw.items():
        if not is_station_key(station):
            raise ScheduleFormatError(f"{doc_id}: unknown station key {station!r}")
        stations[station] = _assignment_from_doc(doc_id, station, raw)

    created_at = None
    if doc.get("createdAt"):
        try:
            created_at = datetime.fromisoformat(str(doc["createdAt"]))
        except ValueError:
            raise ScheduleFormatError(f"{doc_id}: unparseable createdAt {doc['createdAt']!r}")

    return ScheduleDay(date=day_date, stations=stations, created_at=created_at)


class ScheduleRepository:
    """Typed access to the onCallDays collection."""

    def __init__(self, store: DocumentStore, page_size: int = DEFAULT_PAGE_SIZE):
        self.store = store
        self.page_size = page_size
        self.collection = DAYS_COLLECTION

    def get_day(self, date_key: str) -> Optional[ScheduleDay]:
        doc = self.store.get(self.collection, date_key)
        return day_from_doc(date_key, doc) if doc is not None else None

    def exists(self, date_key: str) -> bool:
        return self.store.get(self.collection, date_key) is not None

    def save_day(self, day: ScheduleDay) -> None:
        self.store.set(self.collection, day.date_key, day_to_doc(day))

    def delete_day(self, date_key: str) -> None:
        self.store.delete(self.collection, date_key)

    def keys_in_range(self, start_key: str, end_key: str) -> List[str]:
        filters = [("dateKey", ">=", start_key), ("dateKey", "<=", end_key)]
        return [doc_id for doc_id, _ in iter_query(self.store, self.collection, filters, "dateKey", self.page_size)]

    def days_in_range(self, start_key: str, end_key: str) -> List[ScheduleDay]:
        filters = [("dateKey", ">=", start_key), ("dateKey", "<=", end_key)]
        return [
            day_from_doc(doc_id, doc)
            for doc_id, doc in iter_query(self.store, self.collection, filters, "dateKey", self.page_size)
        ]

    def iter_days(self) -> Iterator[ScheduleDay]:
        for doc_id, doc in iter_query(self.store, self.collection, (), "id", self.page_size):
            yield day_from_doc(doc_id, doc)

    def delete_keys(self, keys: Iterable[str]) -> int:
        """Delete keys page by page; each page is one atomic store call."""
        keys = list(keys)
        for start in range(0, len(keys), self.page_size):
            page = keys[start:start + self.page_size]
            self.store.delete_many(self.collection, page)
            logger.debug(f"Deleted page of {len(page)} days")
        return len(keys)


# ---------------------------------------------------------------------------
# Users (read-only) and aliases
# ---------------------------------------------------------------------------

def user_from_doc(doc_id: str, doc: Document) -> UserIdentity:
    return UserIdentity(
        id=doc_id,
        full_name=str(doc.get("fullName") or "").strip(),
        full_name_he=str(doc.get("fullNameHe") or "").strip(),
        email=str(doc.get("email") or "").strip(),
        role=doc.get("role"),
        status=doc.get("status"),
    )


class UserDirectory:

    def __init__(self, store: DocumentStore, page_size: int = DEFAULT_PAGE_SIZE):
        self.store = store
        self.page_size = page_size

    def list_users(self) -> List[UserIdentity]:
        users = [
            user_from_doc(doc_id, doc)
            for doc_id, doc in iter_query(self.store, USERS_COLLECTION, (), "id", self.page_size)
        ]
        logger.info(f"Loaded {len(users)} users from directory")
        return users

    def get_user(self, uid: str) -> Optional[UserIdentity]:
        doc = self.store.get(USERS_COLLECTION, uid)
        return user_from_doc(uid, doc) if doc is not None else None


class AliasRepository:
    """onCallAliases/{lowercased raw name} → {"userId", "userDisplayName"}"""

    def __init__(self, store: DocumentStore, page_size: int = DEFAULT_PAGE_SIZE):
        self.store = store
        self.page_size = page_size

    def load(self) -> Dict[str, StationAssignment]:
        aliases: Dict[str, StationAssignment] = {}
        for doc_id, doc in iter_query(self.store, ALIASES_COLLECTION, (), "id", self.page_size):
            uid = doc.get("userId")
            if not uid:
                logger.warning(f"Alias {doc_id!r} has no userId; ignored")
                continue
            aliases[doc_id.lower()] = StationAssignment(uid, doc.get("userDisplayName") or uid)
        return aliases

    def save(self, raw_name: str, user: UserIdentity) -> None:
        key = raw_name.strip().lower()
        self.store.set(ALIASES_COLLECTION, key, {"userId": user.id, "userDisplayName": user.display_name})
