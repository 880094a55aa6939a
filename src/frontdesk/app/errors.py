from __future__ import annotations

from typing import Iterable


class FrontDeskError(RuntimeError):
    """Base class for every error the front desk reports to the user."""


class Unauthenticated(FrontDeskError):
    def __init__(self, message: str = "") -> None:
        super().__init__(message.strip() or "You are not signed in. Records cannot be changed.")


class ValidationError(FrontDeskError):
    def __init__(self, field_name: str, *, label: str = "") -> None:
        self.field_name = str(field_name or "").strip()
        self.label = str(label or "").strip() or self.field_name
        super().__init__(f"{self.label} is required.")


class SubscriptionError(FrontDeskError):
    """Raised (or reported) when the live record listener fails."""


class WriteFailure(FrontDeskError):
    def __init__(self, action: str, reason: object) -> None:
        self.action = str(action or "").strip() or "write"
        self.reason = str(reason or "").strip()
        detail = f"Could not {self.action}."
        if self.reason:
            detail = f"{detail} {self.reason}"
        super().__init__(detail)


class ConfigurationError(FrontDeskError):
    def __init__(self, problems: Iterable[str]) -> None:
        self.problems = tuple(str(problem).strip() for problem in problems if str(problem).strip())
        summary = "; ".join(self.problems) or "configuration is invalid"
        super().__init__(f"Front desk configuration is incomplete: {summary}.")


class SupabaseRequestError(FrontDeskError):
    """Transport failure talking to Supabase REST or Auth endpoints."""

    def __init__(self, path: str, detail: str, *, status: int = 0) -> None:
        self.path = str(path or "")
        self.status = max(0, int(status or 0))
        self.detail = str(detail or "").strip()
        super().__init__(f"Supabase request failed for {self.path}: {self.detail}")
