from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from doclink.analysis.models import Summary
from doclink.database.models import DocumentRecord
from doclink.jobs.models import ProcessingJob


class Stage(str, Enum):
    EXTRACTION = "extraction"
    ANALYSIS = "analysis"
    PERSISTENCE = "persistence"
    NOTIFY = "notify"


@dataclass(slots=True)
class PipelineContext:
    job: ProcessingJob
    job_id: int
    attempt: int
    document: DocumentRecord
    raw_bytes: bytes = b""
    extracted_text: str = ""
    summary: Summary | None = None
    summary_created: bool = False


class PipelineStep(ABC):
    stage: Stage

    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
