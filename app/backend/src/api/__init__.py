"""Public API routers exposed by the FastAPI application."""

from . import health, invoices, salary_settings, teacher_salary

__all__ = ["health", "invoices", "salary_settings", "teacher_salary"]
