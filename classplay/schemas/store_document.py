from sqlalchemy import Column, String, DateTime, Text, PrimaryKeyConstraint
from sqlalchemy.sql import func
from classplay.db.base_class import Base

class StoreDocument(Base):
    """
    One node at depth two of the realtime tree, e.g. `sessions/<session_id>`.

    The whole subtree below it (players, currentTurn, moves...) lives in
    `value_json`, so every write to a session touches exactly one row.
    """
    __tablename__ = "store_documents"

    collection = Column(String, nullable=False, index=True)
    doc_key = Column(String, nullable=False)
    value_json = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (PrimaryKeyConstraint("collection", "doc_key", name="_collection_doc_key_pk"),)
