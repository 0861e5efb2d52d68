"""ORM models exposed for easy imports."""

from .base import Base
from .class_session import COUNTABLE_STATUSES, ClassSession
from .salary_audit import SalaryAuditLog
from .salary_settings import GLOBAL_SETTINGS_ID, MonthlyExchangeRate, RatePartition, SalarySettings
from .teacher import Teacher
from .teacher_invoice import (
    InvoiceBonus,
    InvoiceChangeEntry,
    InvoiceExtra,
    InvoiceRefund,
    TeacherInvoice,
)

__all__ = [
    "Base",
    "COUNTABLE_STATUSES",
    "ClassSession",
    "GLOBAL_SETTINGS_ID",
    "InvoiceBonus",
    "InvoiceChangeEntry",
    "InvoiceExtra",
    "InvoiceRefund",
    "MonthlyExchangeRate",
    "RatePartition",
    "SalaryAuditLog",
    "SalarySettings",
    "Teacher",
    "TeacherInvoice",
]
