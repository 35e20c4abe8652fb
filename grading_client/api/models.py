import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


def _frozen_mapping(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class User:
    """Staff user profile as returned by the authentication service."""

    id: int | str
    username: str
    full_name: str = ""
    role: str = ""
    email: str = ""

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


@dataclass(frozen=True)
class LoginResponse:
    access_token: str
    token_type: str
    user: User


@dataclass(frozen=True)
class HealthStatus:
    status: str


@dataclass(frozen=True)
class ExtractionPayload:
    """Structured fields extracted from an uploaded test paper.

    ``raw`` keeps the exact JSON object the extraction service returned; the
    grading call sends it back unchanged via ``to_wire``.
    """

    mhe_type: str
    participant_name: str
    company: str
    date: str
    place: str
    test_type: str
    total_questions: int
    answers: Mapping[str, str]
    source_image: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "answers", _frozen_mapping(self.answers))
        object.__setattr__(self, "raw", _frozen_mapping(copy.deepcopy(dict(self.raw))))

    def to_wire(self) -> dict[str, Any]:
        """Return the original service payload, or one rebuilt from the fields."""
        if self.raw:
            return copy.deepcopy(dict(self.raw))
        return {
            "mhe_type": self.mhe_type,
            "participant_name": self.participant_name,
            "company": self.company,
            "date": self.date,
            "place": self.place,
            "test_type": self.test_type,
            "total_questions": self.total_questions,
            "answers": dict(self.answers),
            "image_base64": self.source_image,
        }


@dataclass(frozen=True)
class QuestionDetail:
    question_number: str
    student_answer: str
    correct_answer: str
    is_correct: bool
    remark: str
    marks_obtained: float


@dataclass(frozen=True)
class GradingResult:
    """Scored test returned by the grading service."""

    participant_name: str
    company: str
    date: str
    place: str
    test_type: str
    mhe_type: str
    answers: Mapping[str, str]
    total_marks_obtained: float
    total_marks: float
    percentage: float
    grade: str
    details: tuple[QuestionDetail, ...] = ()
    id: int | None = None
    created_at: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "answers", _frozen_mapping(self.answers))
        object.__setattr__(self, "details", tuple(self.details))
