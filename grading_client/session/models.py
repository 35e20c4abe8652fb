from dataclasses import dataclass

from grading_client.api.models import User


@dataclass(frozen=True)
class Session:
    """Authenticated identity scoping all protected calls."""

    token: str
    user: User

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.token}"
