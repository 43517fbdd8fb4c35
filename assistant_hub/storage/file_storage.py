"""
JSON file document store for the assistant hub.
Holds users, assistants, threads, function definitions, integrations and usage.
"""
import json
import os
import threading
import logging
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "users",
    "assistants",
    "threads",
    "function_definitions",
    "integration_services",
    "integration_apis",
    "integration_credentials",
    "usage",
)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class FileStorage:
    """Collections of JSON documents persisted to a single file."""
    def __init__(self, data_dir: str = "data", filename: str = "store.json"):
        self.data_dir = data_dir
        self.filename = filename
        self.filepath = os.path.join(data_dir, filename)
        self.lock = threading.RLock()
        self.data = self._empty()
        os.makedirs(data_dir, exist_ok=True)
        self._load_data()

    @staticmethod
    def _empty() -> Dict[str, Dict[str, Any]]:
        return {name: {} for name in COLLECTIONS}

    def _load_data(self) -> None:
        try:
            if os.path.exists(self.filepath):
                with open(self.filepath, 'r') as f:
                    loaded = json.load(f)
                self.data = self._empty()
                for name in COLLECTIONS:
                    self.data[name].update(loaded.get(name, {}))
                logger.info(f"Store loaded from {self.filepath}")
            else:
                logger.info(f"{self.filepath} does not exist, starting with an empty store")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load store: {e}")
            self.data = self._empty()

    def _save_data(self) -> None:
        try:
            if os.path.exists(self.filepath):
                backup_path = f"{self.filepath}.bak"
                with open(self.filepath, 'r') as src:
                    with open(backup_path, 'w') as dst:
                        dst.write(src.read())
            with open(self.filepath, 'w') as f:
                json.dump(self.data, f, indent=2)
            logger.debug(f"Store saved to {self.filepath}")
        except OSError as e:
            logger.error(f"Failed to save store: {e}")

    def _collection(self, collection: str) -> Dict[str, Any]:
        if collection not in self.data:
            raise KeyError(f"Unknown collection: {collection}")
        return self.data[collection]

    def insert(self, collection: str, document: Dict[str, Any], doc_id: Optional[str] = None) -> Dict[str, Any]:
        with self.lock:
            docs = self._collection(collection)
            doc_id = doc_id or uuid.uuid4().hex
            record = dict(document)
            record["id"] = doc_id
            record.setdefault("created_at", _utcnow())
            docs[doc_id] = record
            self._save_data()
            return deepcopy(record)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self.lock:
            record = self._collection(collection).get(doc_id)
            return deepcopy(record) if record is not None else None

    def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        with self.lock:
            return [
                deepcopy(record)
                for record in self._collection(collection).values()
                if all(record.get(key) == value for key, value in filters.items())
            ]

    def find_one(self, collection: str, **filters: Any) -> Optional[Dict[str, Any]]:
        matches = self.find(collection, **filters)
        return matches[0] if matches else None

    def update(self, collection: str, doc_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
        with self.lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                logger.warning(f"Attempt to update missing document {collection}/{doc_id}")
                return None
            docs[doc_id].update(fields)
            docs[doc_id]["updated_at"] = _utcnow()
            self._save_data()
            return deepcopy(docs[doc_id])

    def delete(self, collection: str, doc_id: str) -> bool:
        with self.lock:
            docs = self._collection(collection)
            if doc_id in docs:
                del docs[doc_id]
                self._save_data()
                return True
            return False

    def increment(self, collection: str, doc_id: str, field: str, amount: int) -> Optional[Dict[str, Any]]:
        with self.lock:
            record = self._collection(collection).get(doc_id)
            if record is None:
                return None
            return self.update(collection, doc_id, **{field: record.get(field, 0) + amount})

    def find_thread(self, thread_id: str, assistant_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return self.find_one("threads", thread_id=thread_id, assistant_id=assistant_id, user_id=user_id)

    def get_assistant(self, assistant_id: str) -> Optional[Dict[str, Any]]:
        return self.find_one("assistants", assistant_id=assistant_id, is_deleted=False)

    def periodic_save(self) -> None:
        with self.lock:
            self._save_data()
