"""Month-end close: bill students, then compute tutor earnings.

Meant to be run from cron on the first day of a month, e.g.::

    python -m backend.app.jobs.month_end            # closes the previous month
    python -m backend.app.jobs.month_end --month 1 --year 2030 --commission-rate 0.2
"""

import argparse
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from backend.app.core.settings import get_settings
from backend.app.core.time import previous_month, utc_now
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.services.monthly_billing import generate_monthly_billings
from backend.app.services.payment_gateway import PaymentGateway, get_payment_gateway
from backend.app.services.tutor_earnings import generate_tutor_earnings

logger = logging.getLogger(__name__)


def run_month_end(
    db: Session,
    month: int,
    year: int,
    commission_rate: Decimal | None = None,
    gateway: Optional[PaymentGateway] = None,
) -> dict:
    if commission_rate is None:
        commission_rate = get_settings().default_commission_rate
    billings = generate_monthly_billings(db, month, year, gateway=gateway)
    earnings = generate_tutor_earnings(db, month, year, commission_rate)
    return {"month": month, "year": year, "billings": len(billings), "earnings": len(earnings)}


def main(argv=None) -> None:
    now = utc_now()
    default_month, default_year = previous_month(now.month, now.year)

    parser = argparse.ArgumentParser(description="Generate monthly billings and tutor earnings")
    parser.add_argument("--month", type=int, default=default_month)
    parser.add_argument("--year", type=int, default=default_year)
    parser.add_argument("--commission-rate", type=Decimal, default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        summary = run_month_end(
            db,
            args.month,
            args.year,
            commission_rate=args.commission_rate,
            gateway=get_payment_gateway(),
        )
    finally:
        db.close()
    logger.info("Month-end close finished: %s", summary)


if __name__ == "__main__":
    main()
