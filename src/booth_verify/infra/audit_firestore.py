"""Trilha de auditoria de sessões em Firestore com encadeamento por hash.

- Append-only: eventos nunca são modificados ou deletados
- Encadeamento: cada evento referencia hash do anterior (SHA256)
- Transacional: append condicional dentro de Firestore transaction
- Logs sem dados de verificação
"""

from __future__ import annotations

import logging

from google.cloud import firestore

from booth_verify.domain.audit import AuditLogStore, AuditRecord
from booth_verify.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class FirestoreAuditLogStore(AuditLogStore):
    """Armazenamento de auditoria em Firestore.

    Schema:
        /{collection}/{session_id}/events/{event_id}
        ├── event_id: str (UUID)
        ├── session_id: str
        ├── sequence: int (1, 2, 3...)
        ├── timestamp: datetime
        ├── event: str (create | startMethod | recordAttempt | ...)
        ├── data: map (já redigido)
        ├── prev_hash: str | None
        ├── hash: str
        └── correlation_id: str | None

    Integridade:
        hash = SHA256(canonical_json(evento_sem_hash) + prev_hash)
    """

    def __init__(
        self,
        client: firestore.Client,
        collection: str = "verification_audit",
    ) -> None:
        self._client = client
        self._collection = collection

    def _events_collection(self, session_id: str) -> firestore.CollectionReference:
        return self._client.collection(self._collection).document(session_id).collection("events")

    def get_latest_event(self, session_id: str) -> AuditRecord | None:
        query = (
            self._events_collection(session_id)
            .order_by("sequence", direction=firestore.Query.DESCENDING)
            .limit(1)
        )

        docs = list(query.stream())
        if not docs:
            return None

        doc_dict = docs[0].to_dict()
        if not doc_dict:
            return None

        try:
            return AuditRecord(**doc_dict)
        except Exception as e:
            logger.error(
                "Falha ao desserializar evento de auditoria",
                extra={"session_id": short_id(session_id), "error": type(e).__name__},
            )
            return None

    def list_events(self, session_id: str, limit: int = 500) -> list[AuditRecord]:
        query = (
            self._events_collection(session_id)
            .order_by("sequence", direction=firestore.Query.ASCENDING)
            .limit(limit)
        )

        records: list[AuditRecord] = []
        for doc in query.stream():
            doc_dict = doc.to_dict()
            if not doc_dict:
                continue
            try:
                records.append(AuditRecord(**doc_dict))
            except Exception:
                logger.warning(
                    "Evento malformado ignorado",
                    extra={"session_id": short_id(session_id), "doc_id": doc.id},
                )
        return records

    def append_event(self, record: AuditRecord, expected_prev_hash: str | None) -> bool:
        """Append condicional validando o hash do último evento na transação."""
        events_col = self._events_collection(record.session_id)
        doc_ref = events_col.document(record.event_id)
        transaction = self._client.transaction()

        @firestore.transactional
        def _txn(tx: firestore.Transaction) -> bool:
            return self._execute_append_txn(tx, events_col, doc_ref, record, expected_prev_hash)

        return _txn(transaction)

    def _execute_append_txn(
        self,
        tx: firestore.Transaction,
        events_col: firestore.CollectionReference,
        doc_ref: firestore.DocumentReference,
        record: AuditRecord,
        expected_prev_hash: str | None,
    ) -> bool:
        latest_hash = self._get_latest_hash_in_txn(tx, events_col)

        if latest_hash != expected_prev_hash:
            logger.debug(
                "Conflito de cadeia",
                extra={
                    "session_id": short_id(record.session_id),
                    "expected": expected_prev_hash[:8] if expected_prev_hash else None,
                    "actual": latest_hash[:8] if latest_hash else None,
                },
            )
            return False

        tx.set(doc_ref, record.model_dump())
        logger.debug(
            "Evento appendado",
            extra={"event_id": record.event_id, "event": record.event, "sequence": record.sequence},
        )
        return True

    def _get_latest_hash_in_txn(
        self, tx: firestore.Transaction, events_col: firestore.CollectionReference
    ) -> str | None:
        query = events_col.order_by("sequence", direction=firestore.Query.DESCENDING).limit(1)
        docs = list(query.stream(transaction=tx))
        if not docs:
            return None
        doc_dict = docs[0].to_dict()
        return doc_dict.get("hash") if doc_dict else None
