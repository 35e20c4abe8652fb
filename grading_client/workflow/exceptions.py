from grading_client.workflow.states import WorkflowState


class WorkflowStateError(Exception):
    """Raised when an operation is invoked in a state that does not allow it."""

    def __init__(self, operation: str, state: WorkflowState) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while {state.value}")
