from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from slack_gateway.db import Base


class StoreEntry(Base):
    __tablename__ = "store_entries"
    __table_args__ = (UniqueConstraint("namespace", "key", name="uq_store_entries_namespace_key"),)

    id = Column(Integer, primary_key=True, index=True)

    # Registry name, e.g. "slack_tokens" or "sessions"
    namespace = Column(String(64), index=True, nullable=False)
    key = Column(String(512), nullable=False)

    # JSON-encoded record
    value = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<StoreEntry namespace={self.namespace} key={self.key}>"
