import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from grading_client.api.exceptions import (
    AUTH_EXPIRED_FALLBACK,
    ApiError,
    ErrorKind,
)
from grading_client.api.gateway import ApiGateway
from grading_client.api.models import ExtractionPayload, GradingResult
from grading_client.documents.models import UploadedDocument
from grading_client.logging.logger import Log
from grading_client.session.manager import SessionManager
from grading_client.session.models import Session
from grading_client.workflow.exceptions import WorkflowStateError
from grading_client.workflow.ordering import order_question_keys
from grading_client.workflow.states import (
    FILE_SELECTABLE_STATES,
    IN_FLIGHT_STATES,
    WorkflowState,
)

T = TypeVar("T")

NO_FILE_MESSAGE = "Please select a file first"


@dataclass(frozen=True)
class WorkflowError:
    """User-visible error overlay attached to the current state."""

    kind: ErrorKind
    message: str


@dataclass(slots=True)
class WorkflowContext:
    """Transient entities of one grading workflow."""

    document: UploadedDocument | None = None
    extraction: ExtractionPayload | None = None
    corrections: dict[str, str] = field(default_factory=dict)
    result: GradingResult | None = None


class WorkflowController:
    """Drives login -> select -> extract -> review -> grade -> completed.

    Extract and submit release the lock while the backend call runs so other
    threads can reset or log out. A busy flag keeps at most one of these
    calls outstanding, and an epoch counter lets a call that settles after
    the workflow moved on drop its outcome.
    """

    def __init__(self, sessions: SessionManager, gateway: ApiGateway) -> None:
        self._sessions = sessions
        self._gateway = gateway
        self._lock = threading.RLock()
        self._context = WorkflowContext()
        self._error: WorkflowError | None = None
        self._busy = False
        self._epoch = 0
        self._state = (
            WorkflowState.IDLE if sessions.is_authenticated else WorkflowState.LOGGED_OUT
        )
        sessions.add_listener(self._on_session_ended)

    @property
    def state(self) -> WorkflowState:
        with self._lock:
            return self._state

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._busy

    @property
    def error(self) -> WorkflowError | None:
        with self._lock:
            return self._error

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str | None:
        error = self.error
        return None if error is None else error.message

    @property
    def session(self) -> Session | None:
        return self._sessions.current

    @property
    def document(self) -> UploadedDocument | None:
        with self._lock:
            return self._context.document

    @property
    def extraction(self) -> ExtractionPayload | None:
        with self._lock:
            return self._context.extraction

    @property
    def corrections(self) -> dict[str, str]:
        """A copy of the correction map; mutate it only through ``edit``."""
        with self._lock:
            return dict(self._context.corrections)

    @property
    def result(self) -> GradingResult | None:
        with self._lock:
            return self._context.result

    def start(self) -> WorkflowState:
        """Restore a persisted session, if any, and enter the matching state."""
        restored = self._sessions.restore()
        with self._lock:
            self._teardown()
            self._state = WorkflowState.IDLE if restored else WorkflowState.LOGGED_OUT
            Log.info(f"Workflow started in {self._state.value}")
            return self._state

    def login(self, username: str, password: str) -> Session | None:
        with self._lock:
            if self._state is not WorkflowState.LOGGED_OUT:
                raise WorkflowStateError("log in", self._state)
        try:
            session = self._sessions.login(username, password)
        except ApiError as exc:
            with self._lock:
                self._set_error(exc.kind, exc.message)
            return None
        with self._lock:
            self._teardown()
            self._transition(WorkflowState.IDLE)
        return session

    def logout(self) -> None:
        self._sessions.logout()
        with self._lock:
            self._epoch += 1
            self._teardown()
            self._transition(WorkflowState.LOGGED_OUT)

    def select_file(self, document: UploadedDocument) -> None:
        """Replace the selected document and drop any extraction or result."""
        with self._lock:
            if self._state not in FILE_SELECTABLE_STATES:
                raise WorkflowStateError("select a file", self._state)
            self._teardown()
            self._context.document = document
            self._transition(WorkflowState.FILE_SELECTED)

    def extract(self) -> ExtractionPayload | None:
        """Run extraction on the selected document.

        Returns the payload, or None if the call failed, was ignored as a
        duplicate, or settled after the workflow moved on.
        """
        with self._lock:
            if self._busy:
                Log.warning("Ignoring extract request; a call is already in flight")
                return None
            if self._state is WorkflowState.IDLE:
                self._set_error(ErrorKind.VALIDATION, NO_FILE_MESSAGE)
                return None
            if self._state is not WorkflowState.FILE_SELECTED:
                raise WorkflowStateError("extract", self._state)
            document = self._context.document
            if document is None:
                raise ValueError("WorkflowContext.document must be set before extraction")
            session = self._sessions.current
            epoch = self._begin_call(WorkflowState.EXTRACTING)

        return self._settle(
            lambda: self._gateway.extract(document, session),
            epoch=epoch,
            failure_state=WorkflowState.FILE_SELECTED,
            apply=self._apply_extraction,
        )

    def question_keys(self) -> list[str]:
        """Question keys of the current extraction in display order."""
        with self._lock:
            extraction = self._context.extraction
            if extraction is None:
                return []
            return order_question_keys(extraction.answers)

    def edit(self, key: str, value: str) -> None:
        """Set one entry of the correction map."""
        with self._lock:
            if self._state is not WorkflowState.REVIEWING:
                raise WorkflowStateError("edit answers", self._state)
            self._context.corrections[key] = value
            Log.debug(f"Corrected answer for question {key}", value=value)

    def submit(self) -> GradingResult | None:
        """Grade the reviewed test.

        The original extraction and the full correction map travel together;
        the grading service keeps no state between calls.
        """
        with self._lock:
            if self._busy:
                Log.warning("Ignoring submit request; a call is already in flight")
                return None
            if self._state is not WorkflowState.REVIEWING:
                raise WorkflowStateError("submit", self._state)
            extraction = self._context.extraction
            if extraction is None:
                raise ValueError("WorkflowContext.extraction must be set before grading")
            corrections = dict(self._context.corrections)
            session = self._sessions.current
            epoch = self._begin_call(WorkflowState.GRADING)

        return self._settle(
            lambda: self._gateway.grade(extraction, corrections, session),
            epoch=epoch,
            failure_state=WorkflowState.REVIEWING,
            apply=self._apply_result,
        )

    def reset(self) -> None:
        """Discard the document, extraction, corrections and result.

        Allowed while a call is in flight; its outcome will be dropped.
        """
        with self._lock:
            self._epoch += 1
            self._teardown()
            if self._state is not WorkflowState.LOGGED_OUT:
                self._transition(WorkflowState.IDLE)

    def history(self, skip: int = 0, limit: int = 50) -> list[GradingResult] | None:
        """Fetch previously graded tests. Errors are recorded like any other call."""
        with self._lock:
            if self._state is WorkflowState.LOGGED_OUT:
                raise WorkflowStateError("load history", self._state)
            session = self._sessions.current
        try:
            return self._gateway.history(session, skip=skip, limit=limit)
        except ApiError as exc:
            with self._lock:
                if exc.kind is not ErrorKind.AUTH_EXPIRED:
                    self._set_error(exc.kind, exc.message)
            return None

    def _begin_call(self, state: WorkflowState) -> int:
        self._busy = True
        self._transition(state)
        return self._epoch

    def _settle(
        self,
        request: Callable[[], T],
        *,
        epoch: int,
        failure_state: WorkflowState,
        apply: Callable[[T], None],
    ) -> T | None:
        try:
            value = request()
        except ApiError as exc:
            with self._lock:
                self._busy = False
                if self._is_current(epoch):
                    self._fail(exc, failure_state)
            return None
        except BaseException:
            with self._lock:
                self._busy = False
                if self._epoch == epoch:
                    self._transition(failure_state)
            raise
        with self._lock:
            self._busy = False
            if not self._is_current(epoch):
                return None
            apply(value)
            return value

    def _apply_extraction(self, extraction: ExtractionPayload) -> None:
        self._context.extraction = extraction
        self._context.corrections = dict(extraction.answers)
        self._transition(WorkflowState.REVIEWING)

    def _apply_result(self, result: GradingResult) -> None:
        self._context.result = result
        self._transition(WorkflowState.COMPLETED)

    def _fail(self, exc: ApiError, failure_state: WorkflowState) -> None:
        if exc.kind is ErrorKind.AUTH_EXPIRED:
            self._teardown()
            failure_state = WorkflowState.LOGGED_OUT
        self._transition(failure_state)
        self._set_error(exc.kind, exc.message)

    def _is_current(self, epoch: int) -> bool:
        if self._epoch == epoch:
            return True
        Log.info("Discarding late call outcome; workflow moved on", state=self._state.value)
        return False

    def _on_session_ended(self, expired: bool) -> None:
        with self._lock:
            self._epoch += 1
            self._teardown()
            self._transition(WorkflowState.LOGGED_OUT)
            if expired:
                self._set_error(ErrorKind.AUTH_EXPIRED, AUTH_EXPIRED_FALLBACK)

    def _teardown(self) -> None:
        self._context = WorkflowContext()
        self._error = None

    def _set_error(self, kind: ErrorKind, message: str) -> None:
        self._error = WorkflowError(kind=kind, message=message)
        Log.warning(f"Workflow error in {self._state.value}: {message}", kind=kind.value)

    def _transition(self, state: WorkflowState) -> None:
        if state is not self._state:
            Log.info(f"Workflow {self._state.value} -> {state.value}")
        self._state = state
        if state in IN_FLIGHT_STATES:
            self._error = None
