"""Session credentials and the stores that persist them."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol


@dataclass
class Session:
    """The live access/refresh token pair and cached user profile."""

    access_token: str | None = None
    refresh_token: str | None = None
    user: dict[str, Any] | None = field(default=None)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "user": self.user,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            access_token=data.get("accessToken"),
            refresh_token=data.get("refreshToken"),
            user=data.get("user"),
        )


class CredentialStore(Protocol):
    """Durable client-local storage for exactly one session."""

    def load(self) -> Session | None: ...

    def save(self, session: Session) -> None: ...

    def clear(self) -> None: ...


class MemoryCredentialStore:
    """Process-local store, used by tests and short-lived scripts."""

    def __init__(self, session: Session | None = None) -> None:
        self._data = session.to_dict() if session else None

    def load(self) -> Session | None:
        return Session.from_dict(self._data) if self._data else None

    def save(self, session: Session) -> None:
        self._data = session.to_dict()

    def clear(self) -> None:
        self._data = None


class FileCredentialStore:
    """JSON file holding both tokens and the user blob, cleared as a unit."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Session | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        return Session.from_dict(data)

    def save(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(session.to_dict()))
        tmp.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
