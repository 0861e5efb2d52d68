"""Domain errors raised by the payroll services."""

from __future__ import annotations


class SalaryServiceError(Exception):
    """Base exception for payroll service failures."""

    status_code = 400

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class InvoiceNotFoundError(SalaryServiceError):
    """Raised when an invoice, bonus, extra or teacher does not exist."""

    status_code = 404


class InvoiceStateError(SalaryServiceError):
    """Raised when an invoice's status forbids the requested action."""


class InvoiceValidationError(SalaryServiceError):
    """Raised when request values fail business validation."""


class ConfigurationError(SalaryServiceError):
    """Raised when payroll settings are missing or inconsistent."""


class RefundValidationError(SalaryServiceError):
    """Raised when refund hours or amount do not reconcile with the invoice."""


class RateResolutionError(SalaryServiceError):
    """Raised when no rate tier covers the worked hours."""


__all__ = [
    "ConfigurationError",
    "InvoiceNotFoundError",
    "InvoiceStateError",
    "InvoiceValidationError",
    "RateResolutionError",
    "RefundValidationError",
    "SalaryServiceError",
]
