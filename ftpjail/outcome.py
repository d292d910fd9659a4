from dataclasses import dataclass, field
from typing import List

OK = "ok"
WARNING = "warning"
FAILURE = "failure"
NOOP = "noop"


@dataclass
class Outcome:
    """Result of a core operation; rendered by the console, never printed here."""
    status: str
    message: str
    details: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status != FAILURE

    @classmethod
    def ok(cls, message: str, details=None) -> "Outcome":
        return cls(OK, message, list(details or []))

    @classmethod
    def warning(cls, message: str, details=None) -> "Outcome":
        return cls(WARNING, message, list(details or []))

    @classmethod
    def failure(cls, message: str, details=None) -> "Outcome":
        return cls(FAILURE, message, list(details or []))

    @classmethod
    def noop(cls, message: str, details=None) -> "Outcome":
        return cls(NOOP, message, list(details or []))
