# classplay/store/sql_store.py
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from classplay.core.errors import ValidationError
from classplay.schemas.store_document import StoreDocument
from classplay.store.base import RealtimeStore, Write
from classplay.store.tree import get_in, set_in

logger = logging.getLogger("classplay.store.sql_store")


class SqlStore(RealtimeStore):
    """
    Realtime tree persisted through SQLAlchemy.

    Nodes at depth two (`collection/key`) are rows of `store_documents`; their
    subtree is kept as JSON. A write loads the documents it touches, patches
    them in memory and saves them back inside one database transaction.
    Listeners are dispatched in process.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None, **kwargs: Any):
        super().__init__(**kwargs)
        if session_factory is None:
            from classplay.db.session import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    def _read_node(self, segments: List[str]) -> Any:
        db = self._session_factory()
        try:
            if not segments:
                root: Dict[str, Dict[str, Any]] = {}
                for row in db.query(StoreDocument).all():
                    root.setdefault(row.collection, {})[row.doc_key] = json.loads(row.value_json)
                return root or None
            if len(segments) == 1:
                rows = db.query(StoreDocument).filter(StoreDocument.collection == segments[0]).all()
                return {row.doc_key: json.loads(row.value_json) for row in rows} or None
            row = db.get(StoreDocument, (segments[0], segments[1]))
            if row is None:
                return None
            return get_in(json.loads(row.value_json), segments[2:])
        finally:
            db.close()

    def _write_nodes(self, writes: List[Write]) -> None:
        whole_tree = any(len(segments) == 0 for segments, _ in writes)
        collections: Set[str] = {segments[0] for segments, _ in writes if len(segments) == 1}
        documents: Set[Tuple[str, str]] = {
            (segments[0], segments[1]) for segments, _ in writes
            if len(segments) >= 2 and segments[0] not in collections
        }

        db = self._session_factory()
        try:
            root = self._load_scope(db, whole_tree, collections, documents)
            # Rows are rewritten below; keep the identity map clear of the loaded copies.
            db.expunge_all()
            for segments, value in writes:
                root = set_in(root, segments, value)
            root = root or {}
            if not isinstance(root, dict):
                raise ValidationError("The SQL store only holds mappings at the root")

            if whole_tree:
                db.query(StoreDocument).delete()
                collections = set(root)
                documents = set()
            for collection in collections:
                db.query(StoreDocument).filter(StoreDocument.collection == collection).delete()
                docs = root.get(collection) or {}
                if not isinstance(docs, dict):
                    raise ValidationError(f"The SQL store only holds mappings under '{collection}'")
                for doc_key, value in docs.items():
                    db.add(StoreDocument(collection=collection, doc_key=doc_key, value_json=json.dumps(value)))
            for collection, doc_key in documents:
                value = (root.get(collection) or {}).get(doc_key)
                row = db.get(StoreDocument, (collection, doc_key))
                if value is None:
                    if row is not None:
                        db.delete(row)
                elif row is None:
                    db.add(StoreDocument(collection=collection, doc_key=doc_key, value_json=json.dumps(value)))
                else:
                    row.value_json = json.dumps(value)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _load_scope(
        self,
        db: Session,
        whole_tree: bool,
        collections: Set[str],
        documents: Set[Tuple[str, str]],
    ) -> Dict[str, Dict[str, Any]]:
        query = db.query(StoreDocument)
        if not whole_tree:
            rows = []
            if collections:
                rows.extend(query.filter(StoreDocument.collection.in_(collections)).all())
            for collection, doc_key in documents:
                row = db.get(StoreDocument, (collection, doc_key))
                if row is not None:
                    rows.append(row)
        else:
            rows = query.all()
        root: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            root.setdefault(row.collection, {})[row.doc_key] = json.loads(row.value_json)
        return root
