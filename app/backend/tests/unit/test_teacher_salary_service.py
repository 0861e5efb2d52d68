"""Unit tests for teacher salary generation and invoice lifecycle."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_payroll.db")

import pytest

from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import (
    ClassSession,
    MonthlyExchangeRate,
    SalaryAuditLog,
    Teacher,
    TeacherInvoice,
)
from app.backend.src.models.base import Base
from app.backend.src.services import teacher_salary
from app.backend.src.services.exceptions import (
    ConfigurationError,
    InvoiceNotFoundError,
    InvoiceStateError,
    InvoiceValidationError,
    RefundValidationError,
)

MONTH, YEAR = 3, 2025
ADMIN = "admin-1"


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def _add_classes(
    session,  # type: ignore[no-untyped-def]
    teacher_id: int,
    count: int,
    *,
    month: int = MONTH,
    day: int = 3,
    status: str = "attended",
) -> None:
    start = datetime(YEAR, month, day, 6, tzinfo=timezone.utc)
    for index in range(count):
        session.add(
            ClassSession(
                teacher_id=teacher_id,
                scheduled_at=start + timedelta(hours=index),
                duration_minutes=60,
                status=status,
            )
        )
    session.flush()


def _add_teacher(session, email: str, hours: int = 0) -> int:  # type: ignore[no-untyped-def]
    teacher = Teacher(first_name=email.split("@")[0].title(), last_name="Tutor", email=email)
    session.add(teacher)
    session.flush()
    if hours:
        _add_classes(session, teacher.id, hours)
    return teacher.id


@pytest.fixture()
def payroll() -> dict[str, int]:
    with session_scope() as session:
        session.add(MonthlyExchangeRate(month=MONTH, year=YEAR, rate=50, source="test"))
        alice = _add_teacher(session, "alice@tutors.example", hours=10)
        bob = _add_teacher(session, "bob@tutors.example")
    return {"alice": alice, "bob": bob}


def _generate(session, **kwargs):  # type: ignore[no-untyped-def]
    return teacher_salary.generate_monthly_invoices(session, MONTH, YEAR, actor_id=ADMIN, **kwargs)


def _alice_invoice(session, teacher_id: int) -> TeacherInvoice:  # type: ignore[no-untyped-def]
    return (
        session.query(TeacherInvoice)
        .filter(TeacherInvoice.teacher_id == teacher_id, TeacherInvoice.is_adjustment.is_(False))
        .one()
    )


def _paid_invoice(session, teacher_id: int) -> TeacherInvoice:  # type: ignore[no-untyped-def]
    _generate(session)
    invoice = _alice_invoice(session, teacher_id)
    teacher_salary.publish_invoice(session, invoice.id, actor=ADMIN)
    return teacher_salary.mark_invoice_paid(session, invoice.id, actor=ADMIN)


def test_generation_creates_draft_with_snapshots(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _add_classes(session, payroll["alice"], 2, status="scheduled")
        _add_classes(session, payroll["alice"], 3, month=4)
        results = _generate(session)

        assert results.summary() == {
            "total": 2,
            "created": 1,
            "adjusted": 0,
            "adjustments_created": 0,
            "skipped": 1,
            "failed": 0,
        }
        assert results.skipped_details[0]["reason"] == "Zero hours"

        invoice = _alice_invoice(session, payroll["alice"])
        assert invoice.status == "draft"
        assert invoice.invoice_number is None
        assert invoice.total_hours == 10
        assert invoice.rate_partition == "0-60 hours"
        assert invoice.rate_usd == 3.0
        assert invoice.rate_source == "system"
        assert invoice.exchange_rate == 50
        assert invoice.transfer_fee_model == "flat"
        assert invoice.transfer_fee_value == 25
        assert invoice.gross_amount_usd == 30.0
        assert invoice.total_egp == 1500.0
        assert invoice.transfer_fee_egp == 25.0
        assert invoice.net_amount_egp == 1475.0
        assert len(invoice.class_sessions) == 10
        assert [entry.action for entry in invoice.change_history] == ["created"]

        job = session.query(SalaryAuditLog).filter(SalaryAuditLog.action == "job_run").one()
        assert job.details["created"] == 1


def test_generation_requires_exchange_rate() -> None:
    with session_scope() as session:
        _add_teacher(session, "carol@tutors.example", hours=4)

    with session_scope() as session:
        with pytest.raises(ConfigurationError, match="Exchange rate for 03/2025 is not set"):
            _generate(session)
        assert session.query(TeacherInvoice).count() == 0


def test_rerun_without_new_classes_skips(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        results = _generate(session)

        assert results.created == 0
        reasons = {item["reason"] for item in results.skipped_details}
        assert reasons == {"Invoice already exists", "Zero hours"}


def test_late_classes_extend_open_invoice(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        _add_classes(session, payroll["alice"], 2, day=20)
        results = _generate(session)

        assert results.adjusted == 1
        invoice = _alice_invoice(session, payroll["alice"])
        assert invoice.total_hours == 12
        assert invoice.gross_amount_usd == 36.0
        assert invoice.change_history[-1].action == "classes_added"


def test_late_classes_after_payment_create_adjustment(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        paid = _paid_invoice(session, payroll["alice"])
        _add_classes(session, payroll["alice"], 2, day=25)
        results = _generate(session)

        assert results.adjustments_created == 1
        session.refresh(paid)
        assert paid.total_hours == 10
        assert paid.status == "paid"

        adjustment = (
            session.query(TeacherInvoice).filter(TeacherInvoice.is_adjustment.is_(True)).one()
        )
        assert adjustment.status == "draft"
        assert adjustment.adjustment_for_id == paid.id
        assert adjustment.adjustment_type == "late_submission"
        assert adjustment.total_hours == 2
        assert adjustment.rate_usd == paid.rate_usd
        assert adjustment.exchange_rate == paid.exchange_rate

        _add_classes(session, payroll["alice"], 1, day=27)
        again = _generate(session)
        assert again.adjusted == 1
        session.refresh(adjustment)
        assert adjustment.total_hours == 3


def test_failure_for_one_teacher_does_not_stop_batch(
    payroll: dict[str, int], monkeypatch: pytest.MonkeyPatch
) -> None:
    with session_scope() as session:
        _add_classes(session, payroll["bob"], 5)

    real_resolver = teacher_salary.resolve_teacher_rate

    def _flaky(settings, teacher, hours):  # type: ignore[no-untyped-def]
        if teacher.email.startswith("bob"):
            raise RuntimeError("rate service unavailable")
        return real_resolver(settings, teacher, hours)

    monkeypatch.setattr(teacher_salary, "resolve_teacher_rate", _flaky)

    with session_scope() as session:
        results = _generate(session)

        assert results.created == 1
        assert results.failed == 1
        assert results.errors == [
            {
                "teacher_id": payroll["bob"],
                "teacher_name": "Bob Tutor",
                "error": "rate service unavailable",
            }
        ]
        assert session.query(TeacherInvoice).count() == 1
        unbilled = (
            session.query(ClassSession)
            .filter(ClassSession.teacher_id == payroll["bob"], ClassSession.billed_invoice_id.is_(None))
            .count()
        )
        assert unbilled == 5


def test_dry_run_persists_nothing(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        results = _generate(session, dry_run=True)

        assert results.dry_run is True
        assert results.created == 1
        assert session.query(TeacherInvoice).count() == 0
        assert session.query(SalaryAuditLog).count() == 0
        assert session.query(ClassSession).filter(ClassSession.billed_invoice_id.isnot(None)).count() == 0


def test_generation_can_target_teachers(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        results = _generate(session, teacher_ids=[payroll["bob"]])

        assert results.total == 1
        assert results.skipped == 1


def test_publish_assigns_sequential_numbers(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _add_classes(session, payroll["bob"], 3)
        _generate(session)
        invoices = session.query(TeacherInvoice).order_by(TeacherInvoice.id).all()

        first = teacher_salary.publish_invoice(session, invoices[0].id, actor=ADMIN)
        second = teacher_salary.publish_invoice(session, invoices[1].id, actor=ADMIN)

        assert first.invoice_number == "TCH-2025-03-0001"
        assert second.invoice_number == "TCH-2025-03-0002"
        assert first.published_by == ADMIN


def test_unpublish_returns_to_draft(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])
        teacher_salary.publish_invoice(session, invoice.id, actor=ADMIN)

        reverted = teacher_salary.unpublish_invoice(session, invoice.id, actor=ADMIN)

        assert reverted.status == "draft"
        assert reverted.invoice_number == "TCH-2025-03-0001"
        with pytest.raises(InvoiceStateError):
            teacher_salary.unpublish_invoice(session, invoice.id, actor=ADMIN)


def test_mark_paid_requires_published(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])

        with pytest.raises(InvoiceStateError):
            teacher_salary.mark_invoice_paid(session, invoice.id, actor=ADMIN)

        teacher_salary.publish_invoice(session, invoice.id, actor=ADMIN)
        paid = teacher_salary.mark_invoice_paid(
            session,
            invoice.id,
            actor=ADMIN,
            payment_proof_url="https://files.example/proof.png",
            transaction_id="TX-1",
        )

        assert paid.status == "paid"
        assert paid.payment_method == "bank_transfer"
        assert paid.transaction_id == "TX-1"
        assert paid.paid_at is not None
        with pytest.raises(InvoiceStateError):
            teacher_salary.publish_invoice(session, invoice.id, actor=ADMIN)


def test_bonuses_and_extras_update_totals(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])

        updated = teacher_salary.add_bonus(
            session,
            invoice.id,
            actor=ADMIN,
            source="guardian",
            reason="Parent appreciation",
            gross_amount_usd=20,
            guardian_id="g-7",
        )
        assert updated.bonuses[0].amount_usd == 19.0
        assert updated.bonuses_usd == 19.0
        assert updated.total_usd == 49.0
        assert updated.net_amount_egp == 2425.0

        updated = teacher_salary.add_bonus(
            session, invoice.id, actor=ADMIN, source="admin", reason="Cover class", amount_usd=5
        )
        assert updated.bonuses_usd == 24.0

        updated = teacher_salary.add_extra(
            session, invoice.id, actor=ADMIN, amount_usd=-3, description="Late", category="penalty"
        )
        assert updated.extras_usd == -3.0
        assert updated.total_usd == 51.0

        guardian_bonus_id = updated.bonuses[0].id
        updated = teacher_salary.remove_bonus(session, invoice.id, guardian_bonus_id, actor=ADMIN)
        assert updated.bonuses_usd == 5.0
        updated = teacher_salary.remove_extra(session, invoice.id, updated.extras[0].id, actor=ADMIN)
        assert updated.extras_usd == 0.0
        assert updated.total_usd == 35.0

        actions = [entry.action for entry in updated.change_history]
        assert actions == [
            "created",
            "bonus_added",
            "bonus_added",
            "extra_added",
            "bonus_removed",
            "extra_removed",
        ]


def test_bonus_and_extra_validation(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])

        with pytest.raises(InvoiceValidationError):
            teacher_salary.add_bonus(session, invoice.id, actor=ADMIN, source="admin", reason=" ", amount_usd=5)
        with pytest.raises(InvoiceValidationError):
            teacher_salary.add_bonus(session, invoice.id, actor=ADMIN, source="admin", reason="x")
        with pytest.raises(InvoiceValidationError):
            teacher_salary.add_extra(session, invoice.id, actor=ADMIN, amount_usd=0, description="x")
        with pytest.raises(InvoiceNotFoundError):
            teacher_salary.remove_bonus(session, invoice.id, 999, actor=ADMIN)


def test_paid_invoice_rejects_mutations(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        paid = _paid_invoice(session, payroll["alice"])

        with pytest.raises(InvoiceStateError):
            teacher_salary.add_bonus(
                session, paid.id, actor=ADMIN, source="admin", reason="x", amount_usd=1
            )
        with pytest.raises(InvoiceStateError):
            teacher_salary.apply_overrides(session, paid.id, {"totalUSD": 1}, actor=ADMIN)
        with pytest.raises(InvoiceStateError):
            teacher_salary.delete_invoice(session, paid.id, actor=ADMIN)


def test_applying_same_overrides_twice_is_idempotent(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])
        payload = {"grossAmountUSD": 40, "transferFeeEGP": 10}

        first = teacher_salary.apply_overrides(session, invoice.id, payload, actor=ADMIN)
        first_totals = (first.total_usd, first.total_egp, first.net_amount_egp)
        second = teacher_salary.apply_overrides(session, invoice.id, payload, actor=ADMIN)

        assert (second.total_usd, second.total_egp, second.net_amount_egp) == first_totals
        assert first_totals == (40.0, 2000.0, 1990.0)
        override_entries = [e for e in second.change_history if e.action == "override"]
        assert len(override_entries) == 2
        assert override_entries[0].new_value == override_entries[1].new_value

        cleared = teacher_salary.apply_overrides(
            session, invoice.id, {"grossAmountUSD": None, "transferFeeEGP": ""}, actor=ADMIN
        )
        assert cleared.overrides == {}
        assert cleared.net_amount_egp == 1475.0


def test_unknown_override_is_rejected(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])

        with pytest.raises(InvoiceValidationError, match="Unknown override field"):
            teacher_salary.apply_overrides(session, invoice.id, {"rate": 9}, actor=ADMIN)


def test_delete_releases_classes_for_regeneration(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])

        deleted = teacher_salary.delete_invoice(session, invoice.id, actor=ADMIN)

        assert deleted.status == "archived"
        assert deleted.deleted is True
        assert deleted.class_sessions == []
        assert teacher_salary.list_invoices(session, month=MONTH, year=YEAR) == []

        results = _generate(session)
        assert results.created == 1
        fresh = teacher_salary.list_invoices(session, month=MONTH, year=YEAR)[0]
        assert fresh.id != invoice.id
        assert fresh.total_hours == 10


def test_refund_reduces_net_and_coverage(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        paid = _paid_invoice(session, payroll["alice"])

        quote = teacher_salary.quote_invoice_refund(session, paid.id, 4)
        assert quote.base_amount == 12.0
        assert quote.prorated_fee == 0.2
        assert quote.expected_amount == 12.2

        refunded = teacher_salary.record_refund(
            session,
            paid.id,
            actor=ADMIN,
            refund_amount=12.2,
            refund_hours=4,
            reason="Missed lessons",
            reference="RF-1",
        )

        assert refunded.status == "paid"
        assert refunded.refunded_hours == 4
        assert refunded.refunded_amount_usd == 12.2
        assert refunded.refunded_amount_egp == 610.0
        assert refunded.transfer_fee_egp == 15.0
        assert refunded.net_amount_egp == 875.0
        assert refunded.coverage_hours == 6
        assert refunded.refunds[0].prorated_fee_usd == 0.2
        assert refunded.change_history[-1].action == "refund"

        with pytest.raises(RefundValidationError, match="cannot exceed 6h"):
            teacher_salary.record_refund(
                session, paid.id, actor=ADMIN, refund_amount=21.3, refund_hours=7, reason="x"
            )

        remaining = teacher_salary.quote_invoice_refund(session, paid.id, 6)
        assert remaining.prorated_fee == 0.3
        assert remaining.expected_amount == 18.3

        rest = teacher_salary.record_refund(
            session, paid.id, actor=ADMIN, refund_amount=18.3, refund_hours=6, reason="Rest"
        )
        assert rest.coverage_hours == 0
        assert rest.transfer_fee_egp == 0.0
        assert sum(refund.prorated_fee_usd for refund in rest.refunds) == pytest.approx(0.5)
        with pytest.raises(RefundValidationError, match="No covered hours remain"):
            teacher_salary.record_refund(
                session, paid.id, actor=ADMIN, refund_amount=1, refund_hours=1, reason="x"
            )


def test_refund_mismatch_and_state_are_enforced(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _generate(session)
        invoice = _alice_invoice(session, payroll["alice"])

        with pytest.raises(InvoiceStateError, match="paid invoices"):
            teacher_salary.record_refund(
                session, invoice.id, actor=ADMIN, refund_amount=12.2, refund_hours=4, reason="x"
            )

        teacher_salary.publish_invoice(session, invoice.id, actor=ADMIN)
        teacher_salary.mark_invoice_paid(session, invoice.id, actor=ADMIN)
        with pytest.raises(RefundValidationError, match="Expected \\$12.20"):
            teacher_salary.record_refund(
                session, invoice.id, actor=ADMIN, refund_amount=22.2, refund_hours=4, reason="x"
            )


def test_teacher_views_hide_drafts_and_summarize_year(payroll: dict[str, int]) -> None:
    with session_scope() as session:
        _add_classes(session, payroll["bob"], 2)
        _paid_invoice(session, payroll["alice"])

        assert teacher_salary.list_teacher_invoices(session, payroll["bob"]) == []
        visible = teacher_salary.list_teacher_invoices(session, payroll["alice"])
        assert [invoice.status for invoice in visible] == ["paid"]

        summary = teacher_salary.teacher_ytd_summary(session, payroll["alice"], YEAR)
        assert summary["total_hours"] == 10
        assert summary["paid_count"] == 1
        assert summary["pending_count"] == 0
        assert summary["total_paid_usd"] == 30.0
        assert summary["total_paid_egp"] == 1475.0
        assert summary["current_partition"] == "0-60 hours"
        assert summary["current_rate_usd"] == 3.0

        empty = teacher_salary.teacher_ytd_summary(session, payroll["bob"], YEAR)
        assert empty["paid_count"] == 0
        assert empty["current_rate_usd"] == 3.0


def test_missing_invoice_raises_not_found() -> None:
    with session_scope() as session:
        with pytest.raises(InvoiceNotFoundError, match="Invoice not found"):
            teacher_salary.get_invoice(session, 404)


def test_month_bounds_roll_over_year() -> None:
    start, end = teacher_salary.month_bounds(12, 2024)
    assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2025, 1, 1, tzinfo=timezone.utc)
