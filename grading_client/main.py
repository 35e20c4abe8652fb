import argparse
import getpass
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import httpx

from grading_client.api.exceptions import ApiError
from grading_client.api.gateway import ApiGateway
from grading_client.api.models import ExtractionPayload, GradingResult
from grading_client.config.settings import Settings
from grading_client.database.connection import close_pool
from grading_client.documents.file_loader import FileLoader, decode_data_uri
from grading_client.documents.models import UploadedDocument
from grading_client.logging.logger import Log
from grading_client.preview.factory import PreviewRendererFactory
from grading_client.session.manager import SessionManager
from grading_client.storage.exceptions import StorageError
from grading_client.storage.factory import StorageFactory
from grading_client.workflow.answers import allowed_answers, normalize_answer
from grading_client.workflow.controller import WorkflowController
from grading_client.workflow.states import WorkflowState


@dataclass
class Application:
    gateway: ApiGateway
    sessions: SessionManager
    controller: WorkflowController
    file_loader: FileLoader

    def close(self) -> None:
        self.gateway.close()


def build_application(
    settings: Settings,
    transport: httpx.BaseTransport | None = None,
) -> Application:
    """Wire gateway -> session manager -> workflow controller."""
    gateway = ApiGateway.from_settings(settings, transport=transport)
    storage = StorageFactory.create(settings)
    sessions = SessionManager(storage, gateway)
    controller = WorkflowController(sessions, gateway)
    file_loader = FileLoader(PreviewRendererFactory.create(settings))
    return Application(
        gateway=gateway,
        sessions=sessions,
        controller=controller,
        file_loader=file_loader,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grading-client",
        description="Grade scanned MHE test papers with AI extraction and manual review",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL for this run")
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Log in and store the session")
    login.add_argument("--username", "-u")
    login.add_argument("--password", "-p", help="Prompted for when omitted")

    commands.add_parser("logout", help="Forget the stored session")

    whoami = commands.add_parser("whoami", help="Show the logged-in user")
    whoami.add_argument(
        "--verify", action="store_true", help="Check the token with the server"
    )

    commands.add_parser("health", help="Check that the backend is up")

    history = commands.add_parser("history", help="List previously graded tests")
    history.add_argument("--skip", type=int, default=0)
    history.add_argument("--limit", type=int, default=None)

    grade = commands.add_parser("grade", help="Extract, review and grade a test paper")
    grade.add_argument("file", type=Path, help="Scanned test paper (image or PDF)")
    grade.add_argument(
        "--set",
        dest="corrections",
        action="append",
        default=[],
        metavar="QUESTION=ANSWER",
        help="Correct one extracted answer; repeatable",
    )
    grade.add_argument(
        "--interactive",
        "-i",
        action="store_true",
        help="Review every extracted answer before grading",
    )
    grade.add_argument(
        "--preview-out",
        type=Path,
        metavar="PATH",
        help="Write a preview (page 1 of a PDF as PNG, or the image itself) to PATH",
    )
    return parser


def main(
    argv: Sequence[str] | None = None,
    transport: httpx.BaseTransport | None = None,
    prompt: Callable[[str], str] = input,
) -> int:
    """Entry point: settings -> logging -> wiring -> command."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    Log.configure(args.log_level or settings.log_level)

    try:
        app = build_application(settings, transport=transport)
    except (StorageError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        close_pool()
        return 1

    try:
        handler = _COMMANDS[args.command]
        return handler(app, args, settings, prompt)
    except StorageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        app.close()
        close_pool()


def _cmd_login(
    app: Application, args: argparse.Namespace, _settings: Settings, prompt: Callable[[str], str]
) -> int:
    controller = app.controller
    if controller.start() is not WorkflowState.LOGGED_OUT:
        controller.logout()
    username = args.username or prompt("Username: ")
    password = args.password or getpass.getpass("Password: ")
    session = controller.login(username, password)
    if session is None:
        return _report_error(controller)
    print(f"Logged in as {session.user.display_name}")
    return 0


def _cmd_logout(
    app: Application, _args: argparse.Namespace, _settings: Settings, _prompt: Callable[[str], str]
) -> int:
    app.controller.start()
    app.controller.logout()
    print("Logged out")
    return 0


def _cmd_whoami(
    app: Application, args: argparse.Namespace, _settings: Settings, _prompt: Callable[[str], str]
) -> int:
    app.controller.start()
    session = app.sessions.current
    if session is None:
        print("Not logged in", file=sys.stderr)
        return 1
    user = session.user
    if args.verify:
        try:
            user = app.sessions.verify()
        except ApiError as exc:
            print(f"Error: {exc.message}", file=sys.stderr)
            return 1
    role = f" ({user.role})" if user.role else ""
    print(f"{user.display_name}{role}")
    return 0


def _cmd_health(
    app: Application, _args: argparse.Namespace, _settings: Settings, _prompt: Callable[[str], str]
) -> int:
    try:
        status = app.gateway.health()
    except ApiError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    print(status.status)
    return 0


def _cmd_history(
    app: Application, args: argparse.Namespace, settings: Settings, _prompt: Callable[[str], str]
) -> int:
    controller = app.controller
    if controller.start() is WorkflowState.LOGGED_OUT:
        print("Not logged in", file=sys.stderr)
        return 1
    limit = args.limit if args.limit is not None else settings.history_page_size
    results = controller.history(skip=args.skip, limit=limit)
    if results is None:
        return _report_error(controller)
    for result in results:
        print(
            f"{result.created_at or '-':<26} {result.participant_name or 'N/A':<24} "
            f"{result.mhe_type:<12} {result.total_marks_obtained}/{result.total_marks} "
            f"{result.percentage}% {result.grade}"
        )
    return 0


def _cmd_grade(
    app: Application, args: argparse.Namespace, _settings: Settings, prompt: Callable[[str], str]
) -> int:
    controller = app.controller
    if controller.start() is WorkflowState.LOGGED_OUT:
        print("Not logged in. Run 'grading-client login' first.", file=sys.stderr)
        return 1

    try:
        document = app.file_loader.load(args.file, with_preview=args.preview_out is not None)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if args.preview_out is not None and not _write_preview(document, args.preview_out):
        return 1
    controller.select_file(document)

    extraction = controller.extract()
    if extraction is None:
        return _report_error(controller)
    _print_extraction(extraction, controller.question_keys())

    try:
        edits = _parse_corrections(args.corrections, extraction)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    for key, value in edits.items():
        controller.edit(key, value)
    if args.interactive:
        _review_interactively(controller, extraction, prompt)

    result = controller.submit()
    if result is None:
        return _report_error(controller)
    _print_result(result)
    controller.reset()
    return 0


def _write_preview(document: UploadedDocument, path: Path) -> bool:
    if document.preview is None:
        print(f"No preview available for {document.filename}", file=sys.stderr)
        return True
    try:
        path.write_bytes(decode_data_uri(document.preview))
    except OSError as exc:
        print(f"Error: Cannot write preview to {path}: {exc}", file=sys.stderr)
        return False
    print(f"Preview written to {path}")
    return True


def _parse_corrections(raw: list[str], extraction: ExtractionPayload) -> dict[str, str]:
    edits: dict[str, str] = {}
    for item in raw:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected QUESTION=ANSWER, got '{item}'")
        if key not in extraction.answers:
            raise ValueError(f"Question '{key}' was not extracted from this paper")
        label = normalize_answer(value, key, extraction.mhe_type)
        if label is None:
            choices = ", ".join(allowed_answers(key, extraction.mhe_type))
            raise ValueError(f"Answer '{value}' for Q{key} must be one of: {choices}")
        edits[key] = label
    return edits


def _review_interactively(
    controller: WorkflowController,
    extraction: ExtractionPayload,
    prompt: Callable[[str], str],
) -> None:
    for key in controller.question_keys():
        current = controller.corrections.get(key, "")
        choices = "/".join(allowed_answers(key, extraction.mhe_type))
        while True:
            answer = prompt(f"Q{key} [{current}] ({choices}): ").strip()
            if not answer:
                break
            label = normalize_answer(answer, key, extraction.mhe_type)
            if label is not None:
                controller.edit(key, label)
                break
            print(f"Choose one of: {choices}")


def _print_extraction(extraction: ExtractionPayload, keys: list[str]) -> None:
    print(f"Name:      {extraction.participant_name or 'N/A'}")
    print(f"Company:   {extraction.company or 'N/A'}")
    print(f"MHE Type:  {extraction.mhe_type}")
    print(f"Test Type: {extraction.test_type}")
    print("Extracted answers:")
    for key in keys:
        print(f"  Q{key}: {extraction.answers[key]}")


def _print_result(result: GradingResult) -> None:
    print(f"Grading Results - {result.mhe_type}")
    print(f"Participant: {result.participant_name}")
    print(f"Company:     {result.company}")
    print(f"Marks:       {result.total_marks_obtained} / {result.total_marks}")
    print(f"Percentage:  {result.percentage}%")
    print(f"Grade:       {result.grade}")
    print(f"{'Q#':<5}{'Student':<14}{'Correct':<14}{'Remark':<12}Marks")
    for detail in result.details:
        print(
            f"{detail.question_number:<5}{detail.student_answer:<14}"
            f"{detail.correct_answer:<14}{detail.remark:<12}{detail.marks_obtained}"
        )
    print(f"Total: {result.total_marks_obtained}/{result.total_marks}")


def _report_error(controller: WorkflowController) -> int:
    print(f"Error: {controller.error_message or 'An unexpected error occurred'}", file=sys.stderr)
    return 1


_COMMANDS = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "whoami": _cmd_whoami,
    "health": _cmd_health,
    "history": _cmd_history,
    "grade": _cmd_grade,
}


if __name__ == "__main__":
    sys.exit(main())
