from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from doclink.analysis.models import Summary
from doclink.database.connection import get_connection
from doclink.database.models import DocumentRecord, DocumentStatus
from doclink.pipeline.exceptions import DocumentNotFoundError, DocumentStateError

_DOCUMENT_COLUMNS = """
    id, uuid, user_id, filename, mime_type, size_bytes, payload_location,
    transport_message_id, peer_ref, status, error_message, uploaded_at,
    processed_at, processing_duration_ms
"""


def _to_record(row: dict[str, Any]) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        uuid=str(row["uuid"]),
        user_id=row["user_id"],
        filename=row["filename"],
        mime_type=row["mime_type"],
        size_bytes=row["size_bytes"],
        payload_location=row["payload_location"],
        transport_message_id=row["transport_message_id"],
        peer_ref=row["peer_ref"],
        status=DocumentStatus(row["status"]),
        error_message=row["error_message"],
        uploaded_at=row["uploaded_at"],
        processed_at=row["processed_at"],
        processing_duration_ms=row["processing_duration_ms"],
    )


class DocumentRepository:
    """Database operations for the documents and summaries tables.

    Status updates only ever move a document forward:
    queued -> processing -> completed | failed.
    """

    def create(
        self,
        *,
        uuid: str,
        user_id: str,
        filename: str,
        mime_type: str,
        size_bytes: int,
        payload_location: str,
        transport_message_id: str,
        peer_ref: str,
    ) -> DocumentRecord | None:
        """Insert a queued document. Returns None if the source message was seen before."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO documents
                        (uuid, user_id, filename, mime_type, size_bytes,
                         payload_location, transport_message_id, peer_ref, status)
                    VALUES (%s::uuid, %s, %s, %s, %s, %s, %s, %s, 'queued')
                    ON CONFLICT (user_id, transport_message_id) DO NOTHING
                    RETURNING {_DOCUMENT_COLUMNS}
                    """,
                    (
                        uuid,
                        user_id,
                        filename,
                        mime_type,
                        size_bytes,
                        payload_location,
                        transport_message_id,
                        peer_ref,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        return _to_record(row) if row is not None else None

    def find_by_id(self, document_id: int) -> DocumentRecord:
        """Find a document by ID.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = %s",
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return _to_record(row)

    def find_by_source(self, user_id: str, transport_message_id: str) -> DocumentRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_DOCUMENT_COLUMNS} FROM documents
                    WHERE user_id = %s AND transport_message_id = %s
                    """,
                    (user_id, transport_message_id),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def mark_processing(self, document_id: int) -> None:
        """Move a queued document to processing. No-op if it already moved on."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE documents SET status = 'processing'
                WHERE id = %s AND status = 'queued'
                """,
                (document_id,),
            )
            conn.commit()

    def record_attempt_error(self, document_id: int, error_message: str) -> None:
        """Keep the latest attempt error on a document that is still in flight."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE documents SET error_message = %s
                WHERE id = %s AND status IN ('queued', 'processing')
                """,
                (error_message, document_id),
            )
            conn.commit()

    def mark_failed(self, document_id: int, error_message: str) -> bool:
        """Terminally fail a document. Returns False if it was already terminal."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET status = 'failed', error_message = %s, processed_at = NOW()
                    WHERE id = %s AND status IN ('queued', 'processing')
                    """,
                    (error_message, document_id),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    def complete_with_summary(self, document_id: int, summary: Summary) -> bool:
        """Store the summary and mark the document completed in one transaction.

        Returns:
            True if the summary was created, False if one already existed.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
            DocumentStateError: if the document has already failed.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT status FROM documents WHERE id = %s FOR UPDATE",
                    (document_id,),
                )
                row = cur.fetchone()
                if row is None:
                    raise DocumentNotFoundError(f"Document {document_id} not found")
                if row[0] == DocumentStatus.FAILED.value:
                    raise DocumentStateError(
                        f"Document {document_id} already failed; refusing to attach a summary"
                    )

                cur.execute(
                    """
                    INSERT INTO summaries
                        (document_id, title, executive_summary, key_points,
                         important_facts, insights, tldr, full_response)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (document_id) DO NOTHING
                    RETURNING id
                    """,
                    (
                        document_id,
                        summary.title,
                        summary.executive_summary,
                        Jsonb(list(summary.key_points)),
                        Jsonb(list(summary.important_facts)),
                        summary.insights,
                        summary.tldr,
                        Jsonb(summary.to_payload()),
                    ),
                )
                created = cur.fetchone() is not None

                cur.execute(
                    """
                    UPDATE documents
                    SET status = 'completed', error_message = NULL, processed_at = NOW(),
                        processing_duration_ms =
                            (EXTRACT(EPOCH FROM (NOW() - uploaded_at)) * 1000)::bigint
                    WHERE id = %s AND status IN ('queued', 'processing')
                    """,
                    (document_id,),
                )
            conn.commit()
        return created

    def find_summary(self, document_id: int) -> Summary | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT title, executive_summary, key_points, important_facts,
                           insights, tldr
                    FROM summaries WHERE document_id = %s
                    """,
                    (document_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return Summary(
            title=row["title"],
            executive_summary=row["executive_summary"],
            key_points=tuple(row["key_points"]),
            important_facts=tuple(row["important_facts"]),
            insights=row["insights"],
            tldr=row["tldr"],
        )

    def count_by_status(self) -> dict[str, int]:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT status, COUNT(*) FROM documents GROUP BY status")
                rows = cur.fetchall()
        counts = {status.value: 0 for status in DocumentStatus}
        for status, count in rows:
            counts[status] = int(count)
        return counts
