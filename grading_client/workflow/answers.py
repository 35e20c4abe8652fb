"""Answer labels accepted on a test paper.

The controller stores whatever value it is given; front ends check input
against these labels before calling ``WorkflowController.edit``.
"""

ANSWER_LABELS: tuple[str, ...] = ("TRUE", "FALSE", "Don't Know", "BLANK")
BALANCE_LABEL = "BALANCE"
BALANCE_QUESTION = "20"
BALANCE_MHE_TYPE = "FORKLIFT"


def allowed_answers(question_key: str, mhe_type: str) -> tuple[str, ...]:
    """Return the labels a reviewer may pick for a question.

    Question 20 of the forklift test also accepts BALANCE.
    """
    if question_key == BALANCE_QUESTION and mhe_type.upper() == BALANCE_MHE_TYPE:
        return (*ANSWER_LABELS, BALANCE_LABEL)
    return ANSWER_LABELS


def normalize_answer(value: str, question_key: str, mhe_type: str) -> str | None:
    """Match user input to an allowed label case-insensitively; None if no match."""
    wanted = value.strip().casefold()
    for label in allowed_answers(question_key, mhe_type):
        if label.casefold() == wanted:
            return label
    return None
