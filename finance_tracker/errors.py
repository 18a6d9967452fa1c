# finance_tracker/errors.py


class FinanceError(Exception):
    """
    Base class for domain failures.
    `kind` is stable and machine-checkable, `message` is for people.
    """
    kind = "finance_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(FinanceError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(FinanceError):
    kind = "not_found"
    status_code = 404


class ConflictError(FinanceError):
    kind = "conflict"
    status_code = 409


class ComputationError(FinanceError):
    """Raised when a calculation has no meaningful finite answer."""
    kind = "computation_error"
    status_code = 422
