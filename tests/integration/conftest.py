import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from doclink.config.settings import Settings
from doclink.database.connection import close_pool, get_connection, init_pool
from doclink.database.models import DocumentRecord, JobRecord
from doclink.database.repositories.document_repository import DocumentRepository
from doclink.database.repositories.job_repository import JobRepository
from doclink.jobs.models import ProcessingJob, SourceRef

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "doclink" / "database" / "schema.sql"

_TABLES = (
    "stage_metrics",
    "system_metrics",
    "document_detections",
    "processing_jobs",
    "summaries",
    "documents",
    "transport_sessions",
)


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "doclink_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
    except Exception as e:
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        with get_connection() as conn:
            conn.execute(SCHEMA_PATH.read_text())
            conn.commit()
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        conn.execute(f"TRUNCATE {', '.join(_TABLES)} RESTART IDENTITY CASCADE")
        conn.commit()
        yield conn


@pytest.fixture
def files_root(tmp_path: Path) -> Path:
    return tmp_path


def create_document(
    *,
    user_id: str = "user-1",
    message_id: str | None = None,
    filename: str = "notes.txt",
    mime_type: str = "text/plain",
    payload_location: str | None = None,
) -> DocumentRecord:
    doc_uuid = str(uuid.uuid4())
    document = DocumentRepository().create(
        uuid=doc_uuid,
        user_id=user_id,
        filename=filename,
        mime_type=mime_type,
        size_bytes=64,
        payload_location=payload_location or f"{user_id}/{doc_uuid}.txt",
        transport_message_id=message_id or f"msg-{doc_uuid}",
        peer_ref="peer@example",
    )
    assert document is not None
    return document


def create_job(document: DocumentRecord, *, priority: int = 1, max_attempts: int = 3) -> int:
    payload = ProcessingJob(
        document_id=document.id,
        user_id=document.user_id,
        filename=document.filename,
        mime_type=document.mime_type,
        payload_location=document.payload_location,
        source_ref=SourceRef(
            transport_message_id=document.transport_message_id,
            peer_ref=document.peer_ref,
        ),
    ).to_payload()
    job_id = JobRepository().insert(
        document.id,
        document.user_id,
        payload,
        priority=priority,
        max_attempts=max_attempts,
        timeout_ms=90_000,
    )
    assert job_id is not None
    return job_id


@pytest.fixture
def seed_document(db_conn: psycopg.Connection[Any]) -> DocumentRecord:
    return create_document()


@pytest.fixture
def seed_job(seed_document: DocumentRecord) -> JobRecord:
    job = JobRepository().find_by_id(create_job(seed_document))
    assert job is not None
    return job


@pytest.fixture
def make_document(db_conn: psycopg.Connection[Any]) -> Any:
    return create_document


@pytest.fixture
def make_job(db_conn: psycopg.Connection[Any]) -> Any:
    return create_job
