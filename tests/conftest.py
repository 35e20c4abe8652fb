import base64
import io
from typing import Any

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF resembling a test paper."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "MHE Test Paper - Forklift")
    c.drawString(72, 700, "1. TRUE   2. FALSE")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture()
def user_json() -> dict[str, Any]:
    return {
        "id": 7,
        "username": "staff1",
        "email": "staff1@example.com",
        "full_name": "Asha Staff",
        "role": "staff",
    }


@pytest.fixture()
def login_json(user_json: dict[str, Any]) -> dict[str, Any]:
    return {"access_token": "tok-123", "token_type": "bearer", "user": user_json}


@pytest.fixture()
def extraction_json() -> dict[str, Any]:
    return {
        "mhe_type": "FORKLIFT",
        "participant_name": "Ravi Kumar",
        "company": "Acme Logistics",
        "date": "2025-03-01",
        "place": "Pune",
        "test_type": "Pre-Test",
        "total_questions": 2,
        "answers": {"1": "TRUE", "2": "FALSE"},
        "image_base64": "aW1hZ2U=",
    }


@pytest.fixture()
def grading_json() -> dict[str, Any]:
    return {
        "id": 31,
        "participant_name": "Ravi Kumar",
        "company": "Acme Logistics",
        "date": "2025-03-01",
        "place": "Pune",
        "test_type": "Pre-Test",
        "mhe_type": "FORKLIFT",
        "answers": {"1": "TRUE", "2": "Don't Know"},
        "total_marks_obtained": 1,
        "total_marks": 2,
        "percentage": 50.0,
        "grade": "Fail",
        "details": [
            {
                "question_number": 1,
                "student_answer": "TRUE",
                "correct_answer": "TRUE",
                "is_correct": True,
                "remark": "Correct",
                "marks_obtained": 1,
            },
            {
                "question_number": "2",
                "student_answer": "Don't Know",
                "correct_answer": "FALSE",
                "is_correct": False,
                "remark": "Incorrect",
                "marks_obtained": 0,
            },
        ],
        "created_at": "2025-03-01T10:00:00",
    }
