"""
Domain error taxonomy.

Every error carries a stable ``code`` and the HTTP status it maps to at the
API boundary (see ``erp.main``), rendered as
{"error": {"code": "...", "message": "..."}}.

  ValidationError            422  bad input at construction time
  BusinessRuleError          400  transition blocked by a business rule
    PaymentNotAllowedError        blocked by AP status
    PaymentExceedsBalanceError    blocked by amount
    InvalidStateError             wrong current state for the command
  DuplicateResourceError     409
  ResourceNotFoundError      404
"""

from decimal import Decimal
from typing import Any, Optional


class ErpError(Exception):
    code = "ERP_ERROR"
    status_code = 400

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(ErpError, ValueError):
    code = "VALIDATION_FAILED"
    status_code = 422


class BusinessRuleError(ErpError):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 400


class InvalidStateError(BusinessRuleError):
    code = "INVALID_STATE"


class PaymentNotAllowedError(BusinessRuleError):
    code = "PAYMENT_NOT_ALLOWED"

    def __init__(self, status: Any):
        status_name = getattr(status, "value", status)
        super().__init__(
            f"Payment not allowed for accounts payable in {status_name} status"
        )
        self.status = status


class PaymentExceedsBalanceError(BusinessRuleError):
    code = "PAYMENT_EXCEEDS_BALANCE"

    def __init__(self, amount: Decimal, remaining: Decimal):
        super().__init__(
            f"Payment amount {amount} exceeds remaining balance {remaining}"
        )
        self.amount = amount
        self.remaining = remaining


class DuplicateResourceError(ErpError):
    code = "DUPLICATE_RESOURCE"
    status_code = 409


class ResourceNotFoundError(ErpError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404

    @classmethod
    def for_id(cls, resource: str, resource_id: Any) -> "ResourceNotFoundError":
        return cls(f"{resource} not found with ID: {resource_id}")
