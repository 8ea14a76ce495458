from decimal import Decimal
from typing import Any, Optional

from fastapi import HTTPException, status


class CardServiceError(Exception):
    """Base for every error the card core reports to its callers.

    ``code`` is stable and meant for branching; ``message`` is for humans.
    ``context`` carries the extra fields a caller needs to render a
    specific message (the duplicated field, the current balance, ...).
    """

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        for key, value in self.context.items():
            body[key] = str(value) if isinstance(value, Decimal) else value
        return body


class ValidationError(CardServiceError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)
        self.field = field


class Unauthorized(CardServiceError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(CardServiceError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(CardServiceError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity.capitalize()} {entity_id} not found", entity=entity, entity_id=str(entity_id))
        self.entity = entity


class DuplicateEntry(CardServiceError):
    code = "duplicate_entry"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, field: str, value: Any = None, message: Optional[str] = None):
        if message is None:
            message = f"A record with this {field} already exists"
            if value is not None:
                message = f"A record with {field} {value} already exists"
        super().__init__(message, field=field)
        self.field = field


class InsufficientFunds(CardServiceError):
    code = "insufficient_funds"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, current_balance: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient funds on card. Current balance: {current_balance}",
            current_balance=current_balance,
            requested=requested,
        )
        self.current_balance = current_balance


class InvalidState(CardServiceError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current_status: str):
        super().__init__(f"Reclamation has already been {current_status}", current_status=current_status)
        self.current_status = current_status


class ResourceExhausted(CardServiceError):
    code = "resource_exhausted"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class Internal(CardServiceError):
    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class SettlementFailed(CardServiceError):
    """Raised after an approved reclamation was committed in ``error``."""

    code = "settlement_failed"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, reclamation: dict, cause: CardServiceError):
        super().__init__(
            f"Reclamation approved but failed to deduct funds: {cause.message}",
            reclamation_id=reclamation["id"],
            reclamation_status=reclamation["status"],
            cause=cause.code,
        )
        self.reclamation = reclamation
        self.cause = cause


def to_http_exception(exc: CardServiceError) -> HTTPException:
    headers: Optional[dict] = None
    if isinstance(exc, Unauthorized):
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict(), headers=headers)
