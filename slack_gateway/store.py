"""
Key/value stores behind the gateway's registries.

Every registry (Slack tokens, OAuth clients, authorization codes, access
tokens, MCP sessions) is a ``Store`` injected into the app. The in-memory
store keeps everything in the process; ``SqlStore`` keeps it in any
SQLAlchemy database so restarts do not log users out.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from slack_gateway.db import create_session_factory
from slack_gateway.models import StoreEntry

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class Store(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[Record]:
        ...

    @abstractmethod
    def set(self, key: str, value: Record) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key; returns whether it existed."""

    @abstractmethod
    def items(self) -> List[Tuple[str, Record]]:
        ...

    def __len__(self) -> int:
        return len(self.items())

    def __iter__(self) -> Iterator[str]:
        return iter([key for key, _ in self.items()])

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryStore(Store):
    def __init__(self):
        self._data: Dict[str, Record] = {}

    def get(self, key: str) -> Optional[Record]:
        value = self._data.get(key)
        return dict(value) if value is not None else None

    def set(self, key: str, value: Record) -> None:
        self._data[key] = dict(value)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def items(self) -> List[Tuple[str, Record]]:
        return [(k, dict(v)) for k, v in list(self._data.items())]

    def __len__(self) -> int:
        return len(self._data)


class SqlStore(Store):
    def __init__(self, namespace: str, session_factory: sessionmaker):
        self.namespace = namespace
        self.session_factory = session_factory

    def _find(self, db, key: str) -> Optional[StoreEntry]:
        return (
            db.query(StoreEntry)
            .filter(StoreEntry.namespace == self.namespace, StoreEntry.key == key)
            .first()
        )

    def get(self, key: str) -> Optional[Record]:
        db = self.session_factory()
        try:
            entry = self._find(db, key)
            return json.loads(entry.value) if entry else None
        finally:
            db.close()

    def set(self, key: str, value: Record) -> None:
        db = self.session_factory()
        try:
            entry = self._find(db, key)
            if entry:
                entry.value = json.dumps(value)
            else:
                db.add(StoreEntry(namespace=self.namespace, key=key, value=json.dumps(value)))
            db.commit()
        finally:
            db.close()

    def delete(self, key: str) -> bool:
        db = self.session_factory()
        try:
            entry = self._find(db, key)
            if not entry:
                return False
            db.delete(entry)
            db.commit()
            return True
        finally:
            db.close()

    def items(self) -> List[Tuple[str, Record]]:
        db = self.session_factory()
        try:
            entries = (
                db.query(StoreEntry)
                .filter(StoreEntry.namespace == self.namespace)
                .order_by(StoreEntry.id)
                .all()
            )
            return [(e.key, json.loads(e.value)) for e in entries]
        finally:
            db.close()

    def __len__(self) -> int:
        db = self.session_factory()
        try:
            return db.query(StoreEntry).filter(StoreEntry.namespace == self.namespace).count()
        finally:
            db.close()


REGISTRY_NAMES = (
    "slack_tokens",
    "oauth_clients",
    "pending_authorizations",
    "authorization_codes",
    "access_tokens",
    "sessions",
)


@dataclass
class Registries:
    slack_tokens: Store
    oauth_clients: Store
    pending_authorizations: Store
    authorization_codes: Store
    access_tokens: Store
    sessions: Store


def create_registries(database_url: str = "") -> Registries:
    if not database_url:
        logger.info("Using in-memory registries; tokens and sessions end with the process")
        return Registries(**{name: InMemoryStore() for name in REGISTRY_NAMES})

    session_factory = create_session_factory(database_url)
    logger.info("Using SQL registries")
    return Registries(**{name: SqlStore(name, session_factory) for name in REGISTRY_NAMES})
