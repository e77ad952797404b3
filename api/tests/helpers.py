from datetime import datetime, timezone
from sqlalchemy import select

import db.engine
import tables


# Not fixtures, the database has to be initialized by the app lifespan first

async def create_payment(
    token: str = 'inv_7_42_1000',
    user_ref: int = 42,
    course_ref: int = 7,
    amount: int = 150000,
    status: tables.payment.Status = 'pending',
    created_at: datetime | None = None,
    paid_at: datetime | None = None
) -> int:
    async with db.engine.transaction(db.engine.get_session_maker()) as session:
        payment = tables.PaymentRecord(
            idempotency_token=token,
            user_ref=user_ref,
            course_ref=course_ref,
            amount=amount,
            currency='IDR',
            status=status,
            payment_method='Xendit',
            created_at=created_at or datetime.now(timezone.utc),
            paid_at=paid_at
        )
        session.add(payment)
        await session.flush()
        return payment.id


async def create_enrollment(
    user_ref: int = 42,
    course_ref: int = 7,
    status: tables.enrollment.Status = 'active',
    enrolled_at: datetime | None = None,
    access_expires_at: datetime | None = None
) -> int:
    enrolled_at = enrolled_at or datetime.now(timezone.utc)
    async with db.engine.transaction(db.engine.get_session_maker()) as session:
        enrollment = tables.Enrollment(
            user_ref=user_ref,
            course_ref=course_ref,
            status=status,
            enrolled_at=enrolled_at,
            access_expires_at=access_expires_at,
            created_at=enrolled_at
        )
        session.add(enrollment)
        await session.flush()
        return enrollment.id


async def get_payment(token: str = 'inv_7_42_1000') -> tables.PaymentRecord | None:
    async with db.engine.get_session_maker()() as session:
        return await session.scalar(
            select(tables.PaymentRecord)
            .where(tables.PaymentRecord.idempotency_token == token)
        )


async def get_payments() -> list[tables.PaymentRecord]:
    async with db.engine.get_session_maker()() as session:
        return list((await session.execute(select(tables.PaymentRecord))).scalars())


async def get_enrollments(user_ref: int = 42, course_ref: int = 7) -> list[tables.Enrollment]:
    async with db.engine.get_session_maker()() as session:
        return list((await session.execute(
            select(tables.Enrollment)
            .where(
                tables.Enrollment.user_ref == user_ref,
                tables.Enrollment.course_ref == course_ref
            )
        )).scalars())
