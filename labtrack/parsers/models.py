# ===============================
# File: labtrack/parsers/models.py
# ===============================
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TestStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @classmethod
    def parse(cls, raw: Any) -> "TestStatus":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.PENDING


_STATUS_RANK = {TestStatus.PENDING: 0, TestStatus.PROCESSING: 1, TestStatus.COMPLETED: 2}


class ViewSource(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Registered:
    patient_id: Optional[str] = None
    timeline_id: Optional[int] = None


@dataclass(frozen=True)
class WalkIn:
    walk_in_id: Union[int, str]
    loinc_code: Optional[str] = None


PatientVariant = Union[Registered, WalkIn]


@dataclass(frozen=True)
class ExplicitList:
    tests: List[Dict[str, Any]]


@dataclass(frozen=True)
class ImplicitSingleton:
    record: Dict[str, Any]


TestSource = Union[ExplicitList, ImplicitSingleton]


@dataclass(frozen=True)
class TestOrder:
    id: Any  # test id, or (loinc_code, walk_in_id) for walk-ins
    test_name: str
    loinc_code: Optional[str]
    status: TestStatus
    date: datetime
    variant: PatientVariant
    source: ViewSource
    key: Tuple[Any, str, int]
    timeline_id: Optional[int] = None
    patient: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def target(self) -> "TestTarget":
        test_id = None if isinstance(self.variant, WalkIn) else self.id
        return TestTarget(test_id=test_id, loinc_code=self.loinc_code)


@dataclass(frozen=True)
class TestTarget:
    test_id: Optional[Any] = None
    loinc_code: Optional[str] = None


@dataclass(frozen=True)
class Attachment:
    id: Any
    file_name: str
    file_url: str
    mime_type: str
    added_on: datetime
    test_id: Optional[Any] = None
    loinc_code: Optional[str] = None
    patient_id: Optional[str] = None
    timeline_id: Optional[int] = None
    test: Optional[str] = None
    user_id: Optional[int] = None


@dataclass
class UploadRequest:
    """What the upload flow needs once an order is in processing."""

    variant: PatientVariant
    test_id: Any
    test_name: str
    timeline_id: Optional[int] = None
    patient: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UploadFailure:
    file_name: str
    reason: str


@dataclass
class UploadResult:
    attachments: List[Attachment]
    next_status: TestStatus
    failures: List[UploadFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
