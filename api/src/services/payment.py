from functools import lru_cache
from fastapi import Depends
from datetime import date, datetime, time, timedelta, timezone
from dataclasses import dataclass
from typing import Annotated
from pydantic import BaseModel, ConfigDict
from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

import db.engine
import tables


class PaymentInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    idempotency_token: str
    user_ref: int
    course_ref: int
    amount: int
    currency: str
    status: tables.payment.Status
    provider_invoice_ref: str | None
    payment_method: str | None
    paid_at: datetime | None
    enrollment_ref: int | None
    reviewed_by: str | None
    created_at: datetime


class SalesStats(BaseModel):
    total_sales: int
    paid_payments: int
    total_enrollments: int
    active_enrollments: int


class MonthlySales(BaseModel):
    year: int
    month: int
    total_sales: int


class CourseSales(BaseModel):
    course_id: int
    sales_count: int
    total_sales: int


class DailySales(BaseModel):
    day: date
    total_sales: int


@dataclass(frozen=True)
class PaymentService:
    session_maker: async_sessionmaker[AsyncSession]

    async def list_by_status(self, status: tables.payment.Status) -> list[PaymentInfo]:
        async with self.session_maker() as session:
            payments = (await session.execute(
                select(tables.PaymentRecord)
                .where(tables.PaymentRecord.status == status)
                .order_by(tables.PaymentRecord.created_at.desc(), tables.PaymentRecord.id.desc())
            )).scalars()

            return [PaymentInfo.model_validate(payment) for payment in payments]

    async def list_sales(self, start: date | None = None, end: date | None = None) -> list[PaymentInfo]:
        """Paid payments, `end` day included."""
        query = select(tables.PaymentRecord).where(tables.PaymentRecord.status == 'paid')

        if start is not None:
            query = query.where(tables.PaymentRecord.paid_at >= datetime.combine(start, time(), timezone.utc))
        if end is not None:
            query = query.where(tables.PaymentRecord.paid_at < datetime.combine(end + timedelta(days=1), time(), timezone.utc))

        async with self.session_maker() as session:
            payments = (await session.execute(
                query.order_by(tables.PaymentRecord.paid_at.desc(), tables.PaymentRecord.id.desc())
            )).scalars()

            return [PaymentInfo.model_validate(payment) for payment in payments]

    async def get_stats(self) -> SalesStats:
        async with self.session_maker() as session:
            total_sales, paid_payments = (await session.execute(
                select(
                    func.coalesce(func.sum(tables.PaymentRecord.amount), 0),
                    func.count(tables.PaymentRecord.id)
                )
                .where(tables.PaymentRecord.status == 'paid')
            )).one()

            total_enrollments, active_enrollments = (await session.execute(
                select(
                    func.count(tables.Enrollment.id),
                    func.count(tables.Enrollment.id).filter(tables.Enrollment.status == 'active')
                )
            )).one()

        return SalesStats(
            total_sales=total_sales,
            paid_payments=paid_payments,
            total_enrollments=total_enrollments,
            active_enrollments=active_enrollments
        )

    async def list_monthly_sales(self) -> list[MonthlySales]:
        year = extract('year', tables.PaymentRecord.paid_at)
        month = extract('month', tables.PaymentRecord.paid_at)

        async with self.session_maker() as session:
            rows = (await session.execute(
                select(year, month, func.sum(tables.PaymentRecord.amount))
                .where(
                    tables.PaymentRecord.status == 'paid',
                    tables.PaymentRecord.paid_at.is_not(None)
                )
                .group_by(year, month)
                .order_by(year, month)
            )).all()

        return [MonthlySales(year=int(y), month=int(m), total_sales=total) for y, m, total in rows]

    async def list_top_courses(self, limit: int = 10) -> list[CourseSales]:
        sales_count = func.count(tables.PaymentRecord.id)

        async with self.session_maker() as session:
            rows = (await session.execute(
                select(tables.PaymentRecord.course_ref, sales_count, func.sum(tables.PaymentRecord.amount))
                .where(tables.PaymentRecord.status == 'paid')
                .group_by(tables.PaymentRecord.course_ref)
                .order_by(sales_count.desc(), tables.PaymentRecord.course_ref)
                .limit(limit)
            )).all()

        return [
            CourseSales(course_id=course_id, sales_count=count, total_sales=total)
            for course_id, count, total in rows
        ]

    async def list_daily_sales(self, days: int = 30) -> list[DailySales]:
        """Paid totals per day over the last `days` days, oldest first."""
        year = extract('year', tables.PaymentRecord.paid_at)
        month = extract('month', tables.PaymentRecord.paid_at)
        day = extract('day', tables.PaymentRecord.paid_at)

        async with self.session_maker() as session:
            rows = (await session.execute(
                select(year, month, day, func.sum(tables.PaymentRecord.amount))
                .where(
                    tables.PaymentRecord.status == 'paid',
                    tables.PaymentRecord.paid_at >= datetime.now(timezone.utc) - timedelta(days=days)
                )
                .group_by(year, month, day)
                .order_by(year, month, day)
            )).all()

        return [DailySales(day=date(int(y), int(m), int(d)), total_sales=total) for y, m, d, total in rows]


@lru_cache
def get_payment_service(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(db.engine.get_session_maker)]
) -> PaymentService:
    return PaymentService(session_maker=session_maker)
