from typing import Any

import pytest

from doclink.jobs.exceptions import JobPayloadError, QueueError
from doclink.jobs.models import ProcessingJob, SourceRef


def _job() -> ProcessingJob:
    return ProcessingJob(
        document_id=7,
        user_id="user-1",
        filename="report.pdf",
        mime_type="application/pdf",
        payload_location="user-1/abc.pdf",
        source_ref=SourceRef(transport_message_id="msg-1", peer_ref="peer@example"),
    )


class TestProcessingJobPayload:
    def test_to_payload_uses_wire_names(self) -> None:
        assert _job().to_payload() == {
            "documentId": 7,
            "userId": "user-1",
            "filename": "report.pdf",
            "mimeType": "application/pdf",
            "payloadLocation": "user-1/abc.pdf",
            "sourceRef": {"transportMessageId": "msg-1", "peerRef": "peer@example"},
        }

    def test_from_payload_restores_job(self) -> None:
        assert ProcessingJob.from_payload(_job().to_payload()) == _job()


class TestProcessingJobStrictParsing:
    def _payload(self, **overrides: Any) -> dict[str, Any]:
        payload = _job().to_payload()
        payload.update(overrides)
        return payload

    def test_rejects_non_object(self) -> None:
        with pytest.raises(JobPayloadError):
            ProcessingJob.from_payload([])  # type: ignore[arg-type]

    def test_rejects_string_document_id(self) -> None:
        with pytest.raises(JobPayloadError, match="documentId"):
            ProcessingJob.from_payload(self._payload(documentId="7"))

    def test_rejects_bool_document_id(self) -> None:
        with pytest.raises(JobPayloadError, match="documentId"):
            ProcessingJob.from_payload(self._payload(documentId=True))

    def test_rejects_empty_filename(self) -> None:
        with pytest.raises(JobPayloadError, match="filename"):
            ProcessingJob.from_payload(self._payload(filename=""))

    def test_rejects_missing_source_ref(self) -> None:
        payload = self._payload()
        del payload["sourceRef"]
        with pytest.raises(JobPayloadError, match="sourceRef"):
            ProcessingJob.from_payload(payload)

    def test_rejects_missing_peer_ref(self) -> None:
        with pytest.raises(JobPayloadError, match="sourceRef.peerRef"):
            ProcessingJob.from_payload(self._payload(sourceRef={"transportMessageId": "m"}))

    def test_payload_error_is_a_queue_error(self) -> None:
        assert issubclass(JobPayloadError, QueueError)
