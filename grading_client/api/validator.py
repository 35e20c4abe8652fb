"""Builds typed models from backend JSON payloads."""

from typing import Any

from grading_client.api.exceptions import MalformedResponseError
from grading_client.api.models import (
    ExtractionPayload,
    GradingResult,
    HealthStatus,
    LoginResponse,
    QuestionDetail,
    User,
)


def build_login_response(data: Any) -> LoginResponse:
    payload = _require_object(data, "login response")
    token = payload.get("access_token")
    if not token or not isinstance(token, str):
        raise MalformedResponseError("'access_token' must be a non-empty string")
    token_type = _optional_str(payload, "token_type") or "bearer"
    return LoginResponse(
        access_token=token,
        token_type=token_type,
        user=build_user(payload.get("user")),
    )


def build_user(data: Any) -> User:
    payload = _require_object(data, "user")
    user_id = payload.get("id")
    if isinstance(user_id, bool) or not isinstance(user_id, (int, str)):
        raise MalformedResponseError("'user.id' must be an integer or string")
    username = payload.get("username")
    if not username or not isinstance(username, str):
        raise MalformedResponseError("'user.username' must be a non-empty string")
    return User(
        id=user_id,
        username=username,
        full_name=_optional_str(payload, "full_name"),
        role=_optional_str(payload, "role"),
        email=_optional_str(payload, "email"),
    )


def build_health(data: Any) -> HealthStatus:
    payload = _require_object(data, "health response")
    status = payload.get("status")
    if not isinstance(status, str):
        raise MalformedResponseError("'status' must be a string")
    return HealthStatus(status=status)


def build_extraction(data: Any) -> ExtractionPayload:
    """Validate an extraction response.

    The original object is kept on the payload so it can be sent back to the
    grading endpoint exactly as received.
    """
    payload = _require_object(data, "extraction response")
    answers = _build_answers(payload.get("answers"))
    total_questions = payload.get("total_questions", len(answers))
    if isinstance(total_questions, bool) or not isinstance(total_questions, int):
        raise MalformedResponseError("'total_questions' must be an integer")
    return ExtractionPayload(
        mhe_type=_optional_str(payload, "mhe_type"),
        participant_name=_optional_str(payload, "participant_name"),
        company=_optional_str(payload, "company"),
        date=_optional_str(payload, "date"),
        place=_optional_str(payload, "place"),
        test_type=_optional_str(payload, "test_type"),
        total_questions=total_questions,
        answers=answers,
        source_image=_optional_str(payload, "image_base64"),
        raw=payload,
    )


def build_grading_result(data: Any) -> GradingResult:
    payload = _require_object(data, "grading result")
    raw_details = payload.get("details", [])
    if not isinstance(raw_details, list):
        raise MalformedResponseError("'details' must be a list")
    result_id = payload.get("id")
    if result_id is not None and (isinstance(result_id, bool) or not isinstance(result_id, int)):
        raise MalformedResponseError("'id' must be an integer or null")
    created_at = payload.get("created_at")
    if created_at is not None and not isinstance(created_at, str):
        raise MalformedResponseError("'created_at' must be a string or null")
    return GradingResult(
        participant_name=_optional_str(payload, "participant_name"),
        company=_optional_str(payload, "company"),
        date=_optional_str(payload, "date"),
        place=_optional_str(payload, "place"),
        test_type=_optional_str(payload, "test_type"),
        mhe_type=_optional_str(payload, "mhe_type"),
        answers=_build_answers(payload.get("answers", {})),
        total_marks_obtained=_require_number(payload, "total_marks_obtained"),
        total_marks=_require_number(payload, "total_marks"),
        percentage=_require_number(payload, "percentage"),
        grade=_optional_str(payload, "grade"),
        details=tuple(_build_detail(item, i) for i, item in enumerate(raw_details)),
        id=result_id,
        created_at=created_at,
    )


def build_grading_results(data: Any) -> list[GradingResult]:
    if not isinstance(data, list):
        raise MalformedResponseError("test results must be a list")
    return [build_grading_result(item) for item in data]


def _build_detail(raw: Any, index: int) -> QuestionDetail:
    item = _require_object(raw, f"details[{index}]")
    number = item.get("question_number")
    if isinstance(number, bool) or not isinstance(number, (int, str)):
        raise MalformedResponseError(
            f"'details[{index}].question_number' must be an integer or string"
        )
    is_correct = item.get("is_correct")
    if not isinstance(is_correct, bool):
        raise MalformedResponseError(f"'details[{index}].is_correct' must be a boolean")
    return QuestionDetail(
        question_number=str(number),
        student_answer=_optional_str(item, "student_answer"),
        correct_answer=_optional_str(item, "correct_answer"),
        is_correct=is_correct,
        remark=_optional_str(item, "remark"),
        marks_obtained=_require_number(item, "marks_obtained"),
    )


def _build_answers(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        raise MalformedResponseError("'answers' must be an object")
    answers: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(value, str):
            raise MalformedResponseError(f"answer for question '{key}' must be a string")
        answers[str(key)] = value
    return answers


def _require_object(raw: Any, name: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"{name} must be an object")
    return raw


def _require_number(payload: dict[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponseError(f"'{key}' must be a number")
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedResponseError(f"'{key}' must be a string or null")
    return value
