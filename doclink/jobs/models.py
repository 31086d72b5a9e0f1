from dataclasses import dataclass
from typing import Any

from doclink.jobs.exceptions import JobPayloadError


@dataclass(frozen=True)
class SourceRef:
    """Where an accepted document came from on the transport."""

    transport_message_id: str
    peer_ref: str


@dataclass(frozen=True)
class ProcessingJob:
    """Queue payload for one accepted document."""

    document_id: int
    user_id: str
    filename: str
    mime_type: str
    payload_location: str
    source_ref: SourceRef

    def to_payload(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "userId": self.user_id,
            "filename": self.filename,
            "mimeType": self.mime_type,
            "payloadLocation": self.payload_location,
            "sourceRef": {
                "transportMessageId": self.source_ref.transport_message_id,
                "peerRef": self.source_ref.peer_ref,
            },
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ProcessingJob":
        """Build a job from its JSON payload.

        Raises:
            JobPayloadError: if a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise JobPayloadError("Job payload must be an object")
        document_id = data.get("documentId")
        if not isinstance(document_id, int) or isinstance(document_id, bool):
            raise JobPayloadError("'documentId' must be an integer")
        for key in ("userId", "filename", "mimeType", "payloadLocation"):
            if not isinstance(data.get(key), str) or not data[key]:
                raise JobPayloadError(f"'{key}' must be a non-empty string")
        source = data.get("sourceRef")
        if not isinstance(source, dict):
            raise JobPayloadError("'sourceRef' must be an object")
        for key in ("transportMessageId", "peerRef"):
            if not isinstance(source.get(key), str) or not source[key]:
                raise JobPayloadError(f"'sourceRef.{key}' must be a non-empty string")
        return cls(
            document_id=document_id,
            user_id=data["userId"],
            filename=data["filename"],
            mime_type=data["mimeType"],
            payload_location=data["payloadLocation"],
            source_ref=SourceRef(
                transport_message_id=source["transportMessageId"],
                peer_ref=source["peerRef"],
            ),
        )
