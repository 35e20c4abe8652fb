from collections.abc import Callable, Mapping
from typing import Any

import httpx

from grading_client.api.exceptions import (
    ApiError,
    ApiValidationError,
    AuthError,
    AuthExpiredError,
    MalformedResponseError,
    NetworkError,
    ServerError,
)
from grading_client.api.models import (
    ExtractionPayload,
    GradingResult,
    HealthStatus,
    LoginResponse,
    User,
)
from grading_client.api.validator import (
    build_extraction,
    build_grading_result,
    build_grading_results,
    build_health,
    build_login_response,
    build_user,
)
from grading_client.config.settings import Settings
from grading_client.documents.models import UploadedDocument
from grading_client.logging.logger import Log
from grading_client.session.models import Session

UnauthorizedHandler = Callable[[Session | None], None]


def extract_detail(response: httpx.Response) -> str | None:
    """Return the backend's error message, if the body carries one.

    A string ``detail`` is returned verbatim; a list of ``{"msg": ...}``
    entries (request validation errors) is joined with ``"; "``.
    """
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail")
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, list):
        messages = [
            item["msg"]
            for item in detail
            if isinstance(item, dict) and isinstance(item.get("msg"), str)
        ]
        if messages:
            return "; ".join(messages)
    return None


class ApiGateway:
    """Single chokepoint for every backend call.

    Attaches the bearer token of the session passed to each call and
    classifies every failure into an ``ApiError`` subclass. Any 401 response
    runs the registered unauthorized handler with the session the request
    used, before the error is raised.
    """

    LOGIN_PATH = "/api/auth/login"
    ME_PATH = "/api/auth/me"
    EXTRACT_PATH = "/api/extract-answers"
    GRADE_PATH = "/api/grade-with-corrections"
    HISTORY_PATH = "/api/test-results"
    HEALTH_PATH = "/health"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float,
        extract_timeout_seconds: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._extract_timeout_seconds = extract_timeout_seconds
        self._on_unauthorized: UnauthorizedHandler | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.BaseTransport | None = None,
    ) -> "ApiGateway":
        return cls(
            base_url=settings.api_base_url,
            timeout_seconds=settings.api_timeout_seconds,
            extract_timeout_seconds=settings.extract_timeout_seconds,
            transport=transport,
        )

    def set_unauthorized_handler(self, handler: UnauthorizedHandler | None) -> None:
        self._on_unauthorized = handler

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ApiGateway":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def login(self, username: str, password: str) -> LoginResponse:
        if not username or not password:
            raise ApiValidationError("Username and password are required")
        data = self._request(
            "POST",
            self.LOGIN_PATH,
            json={"username": username, "password": password},
            unauthorized_error=AuthError,
            malformed_error=ApiValidationError,
        )
        response = self._build(build_login_response, data, self.LOGIN_PATH, ApiValidationError)
        Log.info(f"Logged in as {response.user.username}")
        return response

    def current_user(self, session: Session | None) -> User:
        data = self._request("GET", self.ME_PATH, session=session)
        return self._build(build_user, data, self.ME_PATH)

    def extract(self, document: UploadedDocument, session: Session | None) -> ExtractionPayload:
        """Upload a test paper and return the extracted answers.

        Runs model inference remotely, so it uses the long extraction timeout.
        """
        Log.info(
            f"Uploading {document.filename} for extraction",
            mime_type=document.mime_type,
            size_bytes=document.size_bytes,
        )
        data = self._request(
            "POST",
            self.EXTRACT_PATH,
            session=session,
            files={"file": (document.filename, document.content, document.mime_type)},
            timeout=self._extract_timeout_seconds,
        )
        payload = self._build(build_extraction, data, self.EXTRACT_PATH)
        Log.info(f"Extracted {len(payload.answers)} answers from {document.filename}")
        return payload

    def grade(
        self,
        extraction: ExtractionPayload,
        corrections: Mapping[str, str],
        session: Session | None,
    ) -> GradingResult:
        """Grade a test. The full extraction and the full correction map are sent."""
        data = self._request(
            "POST",
            self.GRADE_PATH,
            session=session,
            json={
                "extracted_data": extraction.to_wire(),
                "corrected_answers": dict(corrections),
            },
        )
        result = self._build(build_grading_result, data, self.GRADE_PATH)
        Log.info(
            f"Graded test for {result.participant_name or 'unknown participant'}: "
            f"{result.total_marks_obtained}/{result.total_marks} ({result.grade})"
        )
        return result

    def history(
        self,
        session: Session | None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[GradingResult]:
        data = self._request(
            "GET",
            self.HISTORY_PATH,
            session=session,
            params={"skip": skip, "limit": limit},
        )
        return self._build(build_grading_results, data, self.HISTORY_PATH)

    def health(self) -> HealthStatus:
        data = self._request("GET", self.HEALTH_PATH)
        return self._build(build_health, data, self.HEALTH_PATH)

    def _request(
        self,
        method: str,
        path: str,
        *,
        session: Session | None = None,
        unauthorized_error: type[ApiError] = AuthExpiredError,
        malformed_error: type[ApiError] = ServerError,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        headers: dict[str, str] = {}
        if session is not None:
            headers["Authorization"] = session.authorization_header
        if timeout is not None:
            kwargs["timeout"] = timeout

        Log.debug(f"{method} {path}")
        try:
            response = self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            Log.error(f"{method} {path} transport failure: {exc!r}")
            raise NetworkError() from exc
        except httpx.RequestError as exc:
            Log.error(f"{method} {path} request failure: {exc!r}")
            raise ServerError() from exc

        if response.is_success:
            try:
                return response.json()
            except ValueError as exc:
                Log.error(f"{method} {path} returned a non-JSON body")
                raise malformed_error(status_code=response.status_code) from exc

        raise self._classify(response, method, path, session, unauthorized_error)

    def _classify(
        self,
        response: httpx.Response,
        method: str,
        path: str,
        session: Session | None,
        unauthorized_error: type[ApiError],
    ) -> ApiError:
        status = response.status_code
        detail = extract_detail(response)
        Log.warning(f"{method} {path} failed", status_code=status, detail=detail)
        if status == 401:
            self._notify_unauthorized(session)
            return unauthorized_error(detail, status_code=status)
        if 400 <= status < 500:
            return ApiValidationError(detail, status_code=status)
        return ServerError(detail, status_code=status)

    def _notify_unauthorized(self, session: Session | None) -> None:
        if self._on_unauthorized is not None:
            self._on_unauthorized(session)

    @staticmethod
    def _build(
        builder: Callable[[Any], Any],
        data: Any,
        path: str,
        malformed_error: type[ApiError] = ServerError,
    ) -> Any:
        try:
            return builder(data)
        except MalformedResponseError as exc:
            Log.error(f"Malformed response from {path}: {exc}")
            raise malformed_error() from exc
