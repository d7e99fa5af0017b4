from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


_ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.DONE, JobStatus.ERROR},
    JobStatus.DONE: set(),
    JobStatus.ERROR: set(),
}


class NodeType(str, Enum):
    CONCEPT = "concept"
    DETAIL = "detail"
    EXAMPLE = "example"


@dataclass
class ConceptNode:
    id: str
    label: str
    type: NodeType = NodeType.CONCEPT

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "type": self.type.value}


@dataclass
class ConceptEdge:
    id: str
    source: str
    target: str
    label: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "source": self.source, "target": self.target, "label": self.label}


@dataclass
class ConceptMap:
    nodes: List[ConceptNode] = field(default_factory=list)
    edges: List[ConceptEdge] = field(default_factory=list)

    def node_ids(self) -> set:
        return {node.id for node in self.nodes}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }


@dataclass
class ExtractionResult:
    text: str
    source_type: str


@dataclass
class JobResult:
    summary: str
    concept_map: Optional[ConceptMap] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "conceptMap": self.concept_map.to_dict() if self.concept_map else None,
        }


@dataclass
class UploadMeta:
    original_name: str
    stored_ref: str
    size: int
    content_type: Optional[str] = None


@dataclass
class JobRecord:
    """
    Lifecycle record for one uploaded document. Provenance fields are fixed at
    creation; status, timestamps, result and message only change through
    start/complete/fail, each of which returns a new record.
    """

    id: str
    original_name: str
    stored_ref: str
    size: int
    content_type: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Optional[JobResult] = None
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _check(self, target: JobStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Job {self.id} cannot move from {self.status.value} to {target.value}"
            )

    def start(self, now: Optional[datetime] = None) -> "JobRecord":
        self._check(JobStatus.PROCESSING)
        return replace(self, status=JobStatus.PROCESSING, started_at=now or utcnow())

    def complete(self, result: JobResult, now: Optional[datetime] = None) -> "JobRecord":
        self._check(JobStatus.DONE)
        return replace(self, status=JobStatus.DONE, result=result, message=None, finished_at=now or utcnow())

    def fail(self, message: str, now: Optional[datetime] = None) -> "JobRecord":
        self._check(JobStatus.ERROR)
        return replace(
            self,
            status=JobStatus.ERROR,
            result=None,
            message=message or "Processing failed",
            finished_at=now or utcnow(),
        )

    def to_snapshot(self) -> Dict[str, Any]:
        """
        Status-query payload. Optional keys are omitted until they are set.
        """
        snapshot: Dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "originalName": self.original_name,
            "size": self.size,
            "createdAt": self.created_at.isoformat(),
        }
        if self.started_at is not None:
            snapshot["startedAt"] = self.started_at.isoformat()
        if self.finished_at is not None:
            snapshot["finishedAt"] = self.finished_at.isoformat()
        if self.status == JobStatus.DONE and self.result is not None:
            snapshot["result"] = self.result.to_dict()
        if self.status == JobStatus.ERROR and self.message is not None:
            snapshot["message"] = self.message
        return snapshot
