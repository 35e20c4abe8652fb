import threading
from typing import Any
from unittest.mock import MagicMock

import pytest

from grading_client.api.exceptions import (
    ApiValidationError,
    AuthError,
    AuthExpiredError,
    ErrorKind,
    NetworkError,
    ServerError,
)
from grading_client.api.gateway import ApiGateway
from grading_client.api.models import LoginResponse, User
from grading_client.api.validator import build_extraction, build_grading_result
from grading_client.documents.models import UploadedDocument
from grading_client.session.manager import SessionManager
from grading_client.session.models import Session
from grading_client.storage.memory_adapter import MemoryStorage
from grading_client.workflow.controller import NO_FILE_MESSAGE, WorkflowController
from grading_client.workflow.exceptions import WorkflowStateError
from grading_client.workflow.states import WorkflowState

_USER = User(id=7, username="staff1", full_name="Asha Staff", role="staff")
_DOCUMENT = UploadedDocument(filename="paper.png", content=b"\x89PNG", mime_type="image/png")


def _make_controller() -> tuple[WorkflowController, MagicMock, MemoryStorage]:
    gateway = MagicMock(spec=ApiGateway)
    gateway.login.return_value = LoginResponse(
        access_token="tok-123", token_type="bearer", user=_USER
    )
    storage = MemoryStorage()
    sessions = SessionManager(storage, gateway)
    controller = WorkflowController(sessions, gateway)
    return controller, gateway, storage


def _expire_session(gateway: MagicMock) -> Any:
    """Side effect that behaves like the gateway seeing a 401."""
    on_unauthorized = gateway.set_unauthorized_handler.call_args.args[0]

    def side_effect(*args: Any, **_kwargs: Any) -> None:
        on_unauthorized(next((arg for arg in args if isinstance(arg, Session)), None))
        raise AuthExpiredError()

    return side_effect


def _logged_in(controller: WorkflowController) -> None:
    assert controller.login("staff1", "secret1") is not None


def _reviewing(
    controller: WorkflowController,
    gateway: MagicMock,
    extraction_json: dict[str, Any],
) -> None:
    _logged_in(controller)
    gateway.extract.return_value = build_extraction(extraction_json)
    controller.select_file(_DOCUMENT)
    assert controller.extract() is not None


class TestStartAndLogin:
    def test_starts_logged_out_without_session(self) -> None:
        controller, _, _ = _make_controller()
        assert controller.state is WorkflowState.LOGGED_OUT
        assert controller.start() is WorkflowState.LOGGED_OUT

    def test_start_restores_persisted_session(self) -> None:
        controller, _, storage = _make_controller()
        storage.set_items(
            {
                SessionManager.TOKEN_KEY: "tok-old",
                SessionManager.USER_KEY: '{"id": 7, "username": "staff1"}',
            }
        )

        assert controller.start() is WorkflowState.IDLE
        assert controller.session is not None
        assert controller.session.token == "tok-old"

    def test_login_moves_to_idle(self) -> None:
        controller, _, storage = _make_controller()

        session = controller.login("staff1", "secret1")

        assert session is not None
        assert session.user == _USER
        assert controller.state is WorkflowState.IDLE
        assert storage.get(SessionManager.TOKEN_KEY) == "tok-123"

    def test_failed_login_stays_logged_out_with_error(self) -> None:
        controller, gateway, _ = _make_controller()
        gateway.login.side_effect = AuthError("Incorrect username or password")

        assert controller.login("staff1", "wrong") is None

        assert controller.state is WorkflowState.LOGGED_OUT
        assert controller.error is not None
        assert controller.error.kind is ErrorKind.AUTH
        assert controller.error_message == "Incorrect username or password"

    def test_successful_login_clears_previous_error(self) -> None:
        controller, gateway, _ = _make_controller()
        gateway.login.side_effect = [AuthError(), gateway.login.return_value]
        controller.login("staff1", "wrong")

        controller.login("staff1", "secret1")

        assert not controller.has_error

    def test_login_while_logged_in_is_rejected(self) -> None:
        controller, _, _ = _make_controller()
        _logged_in(controller)

        with pytest.raises(WorkflowStateError, match="Cannot log in while idle"):
            controller.login("staff1", "secret1")


class TestSelectAndExtract:
    def test_select_file(self) -> None:
        controller, _, _ = _make_controller()
        _logged_in(controller)

        controller.select_file(_DOCUMENT)

        assert controller.state is WorkflowState.FILE_SELECTED
        assert controller.document == _DOCUMENT

    def test_select_file_requires_login(self) -> None:
        controller, _, _ = _make_controller()
        with pytest.raises(WorkflowStateError):
            controller.select_file(_DOCUMENT)

    def test_extract_without_file_sets_error(self) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)

        assert controller.extract() is None

        assert controller.state is WorkflowState.IDLE
        assert controller.error_message == NO_FILE_MESSAGE
        gateway.extract.assert_not_called()

    def test_extract_success_seeds_corrections(self, extraction_json: dict[str, Any]) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)

        assert controller.state is WorkflowState.REVIEWING
        assert controller.corrections == {"1": "TRUE", "2": "FALSE"}
        assert not controller.is_busy
        document, session = gateway.extract.call_args.args
        assert document == _DOCUMENT
        assert session.token == "tok-123"

    def test_extract_failure_keeps_file(self) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        controller.select_file(_DOCUMENT)
        gateway.extract.side_effect = ApiValidationError("Could not read answers")

        assert controller.extract() is None

        assert controller.state is WorkflowState.FILE_SELECTED
        assert controller.document == _DOCUMENT
        assert controller.error_message == "Could not read answers"
        assert not controller.is_busy

    def test_retry_after_failure_clears_error(self, extraction_json: dict[str, Any]) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        controller.select_file(_DOCUMENT)
        gateway.extract.side_effect = [NetworkError(), build_extraction(extraction_json)]
        controller.extract()

        assert controller.extract() is not None

        assert not controller.has_error
        assert controller.state is WorkflowState.REVIEWING

    def test_unexpected_exception_propagates_and_unblocks(self) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        controller.select_file(_DOCUMENT)
        gateway.extract.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            controller.extract()

        assert controller.state is WorkflowState.FILE_SELECTED
        assert not controller.is_busy

    def test_question_keys_are_ordered(self) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        controller.select_file(_DOCUMENT)
        gateway.extract.return_value = build_extraction(
            {"answers": {"10": "TRUE", "2": "FALSE", "1": "TRUE", "Q5": "BLANK"}}
        )
        controller.extract()

        assert controller.question_keys() == ["1", "2", "10", "Q5"]


class TestReviewAndSubmit:
    def test_edit_then_submit_sends_corrections(
        self, extraction_json: dict[str, Any], grading_json: dict[str, Any]
    ) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)
        gateway.grade.return_value = build_grading_result(grading_json)

        controller.edit("2", "Don't Know")
        result = controller.submit()

        extraction, corrections, _session = gateway.grade.call_args.args
        assert corrections == {"1": "TRUE", "2": "Don't Know"}
        assert dict(extraction.answers) == {"1": "TRUE", "2": "FALSE"}
        assert result is not None
        assert controller.result == result
        assert controller.state is WorkflowState.COMPLETED

    def test_unchanged_corrections_match_extraction(
        self, extraction_json: dict[str, Any], grading_json: dict[str, Any]
    ) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)
        gateway.grade.return_value = build_grading_result(grading_json)

        controller.submit()

        extraction, corrections, _session = gateway.grade.call_args.args
        assert corrections == dict(extraction.answers)

    def test_corrections_property_is_a_copy(self, extraction_json: dict[str, Any]) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)

        controller.corrections["1"] = "FALSE"

        assert controller.corrections["1"] == "TRUE"

    def test_edit_outside_review_is_rejected(self) -> None:
        controller, _, _ = _make_controller()
        _logged_in(controller)
        with pytest.raises(WorkflowStateError):
            controller.edit("1", "TRUE")

    def test_submit_failure_keeps_review_data(self, extraction_json: dict[str, Any]) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)
        controller.edit("1", "BLANK")
        gateway.grade.side_effect = ServerError()

        assert controller.submit() is None

        assert controller.state is WorkflowState.REVIEWING
        assert controller.extraction is not None
        assert controller.corrections == {"1": "BLANK", "2": "FALSE"}
        assert controller.error_message == "An unexpected error occurred"

    def test_expired_session_during_review_logs_out(
        self, extraction_json: dict[str, Any]
    ) -> None:
        controller, gateway, storage = _make_controller()
        _reviewing(controller, gateway, extraction_json)
        gateway.grade.side_effect = _expire_session(gateway)

        assert controller.submit() is None

        assert controller.state is WorkflowState.LOGGED_OUT
        assert controller.session is None
        assert storage.snapshot() == {}
        assert controller.extraction is None
        assert controller.error is not None
        assert controller.error.kind is ErrorKind.AUTH_EXPIRED
        assert controller.error_message == "Session expired. Please login again."


class TestResetAndLogout:
    def test_reset_clears_everything(
        self, extraction_json: dict[str, Any], grading_json: dict[str, Any]
    ) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)
        gateway.grade.return_value = build_grading_result(grading_json)
        controller.submit()

        controller.reset()

        assert controller.state is WorkflowState.IDLE
        assert controller.document is None
        assert controller.extraction is None
        assert controller.corrections == {}
        assert controller.result is None
        assert controller.session is not None

    def test_reset_is_idempotent(self, extraction_json: dict[str, Any]) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)

        controller.reset()
        controller.reset()

        assert controller.state is WorkflowState.IDLE
        assert controller.corrections == {}

    def test_reset_while_logged_out_stays_logged_out(self) -> None:
        controller, _, _ = _make_controller()
        controller.reset()
        assert controller.state is WorkflowState.LOGGED_OUT

    def test_logout_clears_session_and_workflow(self, extraction_json: dict[str, Any]) -> None:
        controller, gateway, storage = _make_controller()
        _reviewing(controller, gateway, extraction_json)

        controller.logout()

        assert controller.state is WorkflowState.LOGGED_OUT
        assert controller.session is None
        assert controller.extraction is None
        assert storage.snapshot() == {}
        assert not controller.has_error


class TestConcurrentCalls:
    def test_duplicate_submit_sends_one_request(
        self, extraction_json: dict[str, Any], grading_json: dict[str, Any]
    ) -> None:
        controller, gateway, _ = _make_controller()
        _reviewing(controller, gateway, extraction_json)
        started, release = threading.Event(), threading.Event()
        result = build_grading_result(grading_json)

        def slow_grade(*_args: Any) -> Any:
            started.set()
            release.wait(timeout=5)
            return result

        gateway.grade.side_effect = slow_grade
        worker = threading.Thread(target=controller.submit)
        worker.start()
        assert started.wait(timeout=5)

        assert controller.is_busy
        assert controller.state is WorkflowState.GRADING
        assert controller.submit() is None

        release.set()
        worker.join(timeout=5)
        assert gateway.grade.call_count == 1
        assert controller.state is WorkflowState.COMPLETED
        assert not controller.is_busy

    def test_late_extraction_after_reset_is_discarded(
        self, extraction_json: dict[str, Any]
    ) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        controller.select_file(_DOCUMENT)
        started, release = threading.Event(), threading.Event()
        outcome: list[Any] = []

        def slow_extract(*_args: Any) -> Any:
            started.set()
            release.wait(timeout=5)
            return build_extraction(extraction_json)

        gateway.extract.side_effect = slow_extract
        worker = threading.Thread(target=lambda: outcome.append(controller.extract()))
        worker.start()
        assert started.wait(timeout=5)

        controller.reset()
        release.set()
        worker.join(timeout=5)

        assert outcome == [None]
        assert controller.state is WorkflowState.IDLE
        assert controller.extraction is None
        assert not controller.is_busy

    def test_late_failure_after_logout_is_discarded(self) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        controller.select_file(_DOCUMENT)
        started, release = threading.Event(), threading.Event()

        def slow_failure(*_args: Any) -> Any:
            started.set()
            release.wait(timeout=5)
            raise NetworkError()

        gateway.extract.side_effect = slow_failure
        worker = threading.Thread(target=controller.extract)
        worker.start()
        assert started.wait(timeout=5)

        controller.logout()
        release.set()
        worker.join(timeout=5)

        assert controller.state is WorkflowState.LOGGED_OUT
        assert not controller.has_error

    def test_late_401_for_old_token_keeps_new_session(self) -> None:
        controller, gateway, storage = _make_controller()
        _logged_in(controller)
        controller.select_file(_DOCUMENT)
        on_unauthorized = gateway.set_unauthorized_handler.call_args.args[0]
        started, release = threading.Event(), threading.Event()

        def slow_rejection(_document: Any, session: Session) -> Any:
            started.set()
            release.wait(timeout=5)
            on_unauthorized(session)
            raise AuthExpiredError()

        gateway.extract.side_effect = slow_rejection
        worker = threading.Thread(target=controller.extract)
        worker.start()
        assert started.wait(timeout=5)

        controller.logout()
        gateway.login.return_value = LoginResponse(
            access_token="tok-B", token_type="bearer", user=_USER
        )
        _logged_in(controller)
        release.set()
        worker.join(timeout=5)

        assert controller.state is WorkflowState.IDLE
        assert controller.session is not None
        assert controller.session.token == "tok-B"
        assert storage.get(SessionManager.TOKEN_KEY) == "tok-B"
        assert not controller.has_error
        assert not controller.is_busy


class TestHistory:
    def test_returns_results(self, grading_json: dict[str, Any]) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        gateway.history.return_value = [build_grading_result(grading_json)]

        results = controller.history(skip=0, limit=10)

        assert results is not None
        assert results[0].participant_name == "Ravi Kumar"
        assert gateway.history.call_args.kwargs == {"skip": 0, "limit": 10}

    def test_failure_is_recorded(self) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        gateway.history.side_effect = NetworkError()

        assert controller.history() is None
        assert controller.error_message == "Network error. Please check your connection."

    def test_expired_session_logs_out(self) -> None:
        controller, gateway, _ = _make_controller()
        _logged_in(controller)
        gateway.history.side_effect = _expire_session(gateway)

        assert controller.history() is None
        assert controller.state is WorkflowState.LOGGED_OUT
        assert controller.error is not None
        assert controller.error.kind is ErrorKind.AUTH_EXPIRED

    def test_requires_login(self) -> None:
        controller, _, _ = _make_controller()
        with pytest.raises(WorkflowStateError):
            controller.history()
