"""Seed the development database with payroll settings, teachers and classes."""

import os
from datetime import datetime, timezone

from app.backend.src.db import get_engine, session_scope
from app.backend.src.models.base import Base
from app.backend.src.services.seed import seed_development_payroll


def main() -> None:
    """Create tables (if needed) and seed last month's demo payroll data."""

    engine = get_engine()
    Base.metadata.create_all(bind=engine)

    now = datetime.now(timezone.utc)
    default_month, default_year = (12, now.year - 1) if now.month == 1 else (now.month - 1, now.year)
    month = int(os.environ.get("SEED_MONTH", default_month))
    year = int(os.environ.get("SEED_YEAR", default_year))

    with session_scope() as session:
        result = seed_development_payroll(session, month, year)

    print("✅ Development data ready!")
    print(f"Period: {month:02d}/{year}")
    print(f"Teachers created: {result.teachers_created}")
    print(f"Class sessions created: {result.sessions_created}")
    rate_status = "created" if result.exchange_rate_created else "unchanged"
    print(f"Exchange rate ({rate_status})")


if __name__ == "__main__":
    main()
