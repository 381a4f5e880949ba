from typing import Optional


class FinTrackError(Exception):
    pass


class ValidationError(FinTrackError, ValueError):
    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        message = "; ".join(f"{field}: {msg}" for field, msg in field_errors.items())
        super().__init__(message or "Validation failed")


class NotFoundError(FinTrackError, ValueError):
    pass


class UnauthorizedError(FinTrackError):
    pass


class ExpenseNotAllowed(FinTrackError):
    def __init__(self, reason: str, budget_id: Optional[int] = None) -> None:
        self.reason = reason
        self.budget_id = budget_id
        super().__init__(reason)


class AuthenticationError(FinTrackError):
    pass


class Unauthenticated(AuthenticationError):
    pass


class InvalidCredential(AuthenticationError):
    pass


class Expired(AuthenticationError):
    pass


class ExternalServiceError(FinTrackError):
    pass


class ServiceUnavailable(ExternalServiceError):
    pass


class InvalidResponse(ExternalServiceError):
    pass
