from enum import Enum


class WorkflowState(str, Enum):
    LOGGED_OUT = "logged_out"
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    GRADING = "grading"
    COMPLETED = "completed"


# States where a backend call is outstanding; errors surface only after it settles.
IN_FLIGHT_STATES = frozenset({WorkflowState.EXTRACTING, WorkflowState.GRADING})

FILE_SELECTABLE_STATES = frozenset(
    {
        WorkflowState.IDLE,
        WorkflowState.FILE_SELECTED,
        WorkflowState.REVIEWING,
        WorkflowState.COMPLETED,
    }
)
