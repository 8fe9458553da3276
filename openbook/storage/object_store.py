"""
Object Store

Key/value persistence for three collections: profiles, knowledge bases and
chat sessions. Values are pydantic models serialized to JSON, so a stored
object is always a snapshot: mutating a loaded object does nothing until it
is put back.
"""

import json
import logging
import os
import tempfile
from enum import Enum
from threading import RLock
from typing import Dict, List, Optional, Protocol, Type

from pydantic import BaseModel

from ..schema.core_schema import ChatSession, KnowledgeBase, Profile

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    PROFILES = "profiles"
    KNOWLEDGE_BASES = "knowledge_bases"
    SESSIONS = "sessions"


MODEL_FOR: Dict[Collection, Type[BaseModel]] = {
    Collection.PROFILES: Profile,
    Collection.KNOWLEDGE_BASES: KnowledgeBase,
    Collection.SESSIONS: ChatSession,
}


class ObjectStore(Protocol):
    def get(self, collection: Collection, key: str) -> Optional[BaseModel]: ...

    def put(self, collection: Collection, key: str, value: BaseModel) -> None: ...

    def exists(self, collection: Collection, key: str) -> bool: ...

    def delete(self, collection: Collection, key: str) -> None: ...

    def list_session_ids(self, username: str) -> List[str]: ...


def _check_key(key: str) -> str:
    if not key or "/" in key or "\\" in key or key in {".", ".."}:
        raise ValueError(f"Invalid storage key: {key!r}")
    return key


def _decode(collection: Collection, raw: str) -> BaseModel:
    return MODEL_FOR[collection].model_validate_json(raw)


def _owned_by(raw: str, username: str, label: str) -> Optional[str]:
    """Session id of a serialized session if it belongs to `username`."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Skipping unreadable session %s", label)
        return None
    if data.get("username") == username:
        return data.get("session_id")
    return None


class InMemoryObjectStore:
    """Process-local store holding serialized JSON per collection."""

    def __init__(self) -> None:
        self._data: Dict[Collection, Dict[str, str]] = {c: {} for c in Collection}
        self._lock = RLock()

    def get(self, collection: Collection, key: str) -> Optional[BaseModel]:
        with self._lock:
            raw = self._data[collection].get(key)
        if raw is None:
            return None
        return _decode(collection, raw)

    def put(self, collection: Collection, key: str, value: BaseModel) -> None:
        raw = value.model_dump_json()
        with self._lock:
            self._data[collection][_check_key(key)] = raw

    def exists(self, collection: Collection, key: str) -> bool:
        with self._lock:
            return key in self._data[collection]

    def delete(self, collection: Collection, key: str) -> None:
        with self._lock:
            self._data[collection].pop(key, None)

    def list_session_ids(self, username: str) -> List[str]:
        # No secondary index: every session is inspected
        with self._lock:
            raws = list(self._data[Collection.SESSIONS].items())
        ids = []
        for key, raw in raws:
            session_id = _owned_by(raw, username, key)
            if session_id:
                ids.append(session_id)
        return ids


class FileObjectStore:
    """
    JSON files on disk, one directory per collection:
        <root>/profiles/<username>.json
        <root>/knowledge_bases/<username>.json
        <root>/sessions/<session_id>.json
    """

    def __init__(self, root_path: str = "openbook_storage") -> None:
        self.root_path = root_path
        for collection in Collection:
            os.makedirs(os.path.join(self.root_path, collection.value), exist_ok=True)

    def _path(self, collection: Collection, key: str) -> str:
        return os.path.join(self.root_path, collection.value, f"{_check_key(key)}.json")

    def get(self, collection: Collection, key: str) -> Optional[BaseModel]:
        path = self._path(collection, key)
        if not os.path.exists(path):
            logger.debug("%s/%s not found", collection.value, key)
            return None
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
        return _decode(collection, raw)

    def put(self, collection: Collection, key: str, value: BaseModel) -> None:
        path = self._path(collection, key)
        raw = value.model_dump_json(indent=2)
        # One temp file per writer; readers never see a half-written file
        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(raw)
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug("Saved %s/%s", collection.value, key)

    def exists(self, collection: Collection, key: str) -> bool:
        return os.path.exists(self._path(collection, key))

    def delete(self, collection: Collection, key: str) -> None:
        path = self._path(collection, key)
        if os.path.exists(path):
            os.remove(path)

    def list_session_ids(self, username: str) -> List[str]:
        directory = os.path.join(self.root_path, Collection.SESSIONS.value)
        ids = []
        for filename in sorted(os.listdir(directory)):
            if not filename.endswith(".json"):
                continue
            with open(os.path.join(directory, filename), "r", encoding="utf-8") as f:
                raw = f.read()
            session_id = _owned_by(raw, username, filename)
            if session_id:
                ids.append(session_id)
        return ids

