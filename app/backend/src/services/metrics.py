"""Prometheus metric definitions for payroll processing."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

salary_generation_runs_total = Counter(
    "salary_generation_runs_total",
    "Total monthly invoice generation runs by outcome.",
    labelnames=["status"],
)

salary_generation_teachers_total = Counter(
    "salary_generation_teachers_total",
    "Teachers processed by invoice generation, by per-teacher outcome.",
    labelnames=["outcome"],
)

salary_generation_seconds = Histogram(
    "salary_generation_seconds",
    "Duration of monthly invoice generation runs in seconds.",
    labelnames=["trigger"],
)

invoice_transitions_total = Counter(
    "teacher_invoice_transitions_total",
    "Invoice status transitions.",
    labelnames=["to_status"],
)

refunds_total = Counter(
    "teacher_invoice_refunds_total",
    "Refund requests by validation outcome.",
    labelnames=["status"],
)

__all__ = [
    "invoice_transitions_total",
    "refunds_total",
    "salary_generation_runs_total",
    "salary_generation_seconds",
    "salary_generation_teachers_total",
]
