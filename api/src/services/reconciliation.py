import logging
from enum import StrEnum
from functools import lru_cache
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Annotated
from fastapi import Depends
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

import db.engine
import tables
from services.events import EventPublisher, get_event_publisher


logger = logging.getLogger('lms-billing-reconciliation')

MANUAL_PAYMENT_METHOD = 'Manual Verification'


class PaymentNotFoundError(Exception):
    ...


class InvalidStateError(Exception):
    ...


class OutcomeKind(StrEnum):
    GRANTED = 'granted'
    ALREADY_PROCESSED = 'already_processed'
    UNKNOWN = 'unknown'
    AMOUNT_MISMATCH = 'amount_mismatch'
    CLOSED = 'closed'
    IGNORED = 'ignored'
    REJECTED = 'rejected'


class ReconciliationOutcome(BaseModel):
    kind: OutcomeKind
    message: str
    payment_id: int | None = None
    status: tables.payment.Status | None = None
    enrollment_id: int | None = None
    user_id: int | None = None
    course_id: int | None = None


@dataclass(frozen=True)
class ReconciliationService:
    session_maker: async_sessionmaker[AsyncSession]
    publisher: EventPublisher

    async def reconcile(
        self,
        idempotency_token: str,
        provider_status: str,
        paid_amount: int | None,
        provider_invoice_ref: str | None,
        paid_at: datetime | None,
        payment_method: str | None = None
    ) -> ReconciliationOutcome:
        async with db.engine.transaction(self.session_maker) as session:
            payment = await session.scalar(
                select(tables.PaymentRecord)
                .where(tables.PaymentRecord.idempotency_token == idempotency_token)
                .with_for_update()
            )

            if payment is None:
                # Stale or foreign notification, acknowledging it stops provider retries
                logger.warning(f'payment with token "{idempotency_token}" not found, ignoring notification')
                return ReconciliationOutcome(kind=OutcomeKind.UNKNOWN, message='Payment not found')

            if payment.status != 'pending':
                return _already_processed(payment)

            if provider_status == 'PAID':
                outcome = await _grant(
                    session,
                    payment,
                    paid_amount=paid_amount,
                    provider_invoice_ref=provider_invoice_ref,
                    paid_at=paid_at,
                    payment_method=payment_method
                )
            elif provider_status in ('EXPIRED', 'FAILED'):
                outcome = await _close(session, payment, provider_status)
            else:
                logger.info(f'ignoring status "{provider_status}" for payment {payment.id}')
                outcome = ReconciliationOutcome(
                    kind=OutcomeKind.IGNORED,
                    message=f'Status "{provider_status}" ignored',
                    payment_id=payment.id,
                    status=payment.status
                )

        await self.publisher.publish_outcome(outcome)
        return outcome

    async def confirm_manually(self, payment_id: int, admin_ref: str) -> ReconciliationOutcome:
        """Settles a pending payment on an administrator's word (e.g. a bank transfer proof).

        Same path as a `PAID` notification carrying the stored amount.
        """
        async with db.engine.transaction(self.session_maker) as session:
            payment = await _get_locked(session, payment_id)

            if payment.status != 'pending':
                return _already_processed(payment)

            outcome = await _grant(
                session,
                payment,
                paid_amount=payment.amount,
                provider_invoice_ref=None,
                paid_at=None,
                payment_method=MANUAL_PAYMENT_METHOD,
                reviewed_by=admin_ref
            )

        logger.info(f'payment {payment_id} confirmed manually by {admin_ref}')
        await self.publisher.publish_outcome(outcome)
        return outcome

    async def reject_manually(self, payment_id: int, admin_ref: str) -> ReconciliationOutcome:
        async with db.engine.transaction(self.session_maker) as session:
            payment = await _get_locked(session, payment_id)

            if payment.status != 'pending':
                raise InvalidStateError(f'payment {payment_id} is already {payment.status}')

            swapped = await _swap_status(session, payment, {
                tables.PaymentRecord.status: 'failed',
                tables.PaymentRecord.reviewed_by: admin_ref
            })
            if not swapped:
                raise InvalidStateError(f'payment {payment_id} was settled concurrently')

            outcome = ReconciliationOutcome(
                kind=OutcomeKind.REJECTED,
                message='Payment rejected',
                payment_id=payment.id,
                status='failed',
                user_id=payment.user_ref,
                course_id=payment.course_ref
            )

        logger.info(f'payment {payment_id} rejected manually by {admin_ref}')
        await self.publisher.publish_outcome(outcome)
        return outcome


async def _get_locked(session: AsyncSession, payment_id: int) -> tables.PaymentRecord:
    payment = await session.scalar(
        select(tables.PaymentRecord)
        .where(tables.PaymentRecord.id == payment_id)
        .with_for_update()
    )
    if payment is None:
        raise PaymentNotFoundError(f'payment {payment_id} not found')

    return payment


def _already_processed(payment: tables.PaymentRecord) -> ReconciliationOutcome:
    logger.info(f'payment {payment.id} is already {payment.status}, nothing to do')
    return ReconciliationOutcome(
        kind=OutcomeKind.ALREADY_PROCESSED,
        message='Payment already processed',
        payment_id=payment.id,
        status=payment.status,
        enrollment_id=payment.enrollment_ref
    )


async def _swap_status(session: AsyncSession, payment: tables.PaymentRecord, values: dict) -> bool:
    # Compare-and-swap on `status`, the second writer of a race affects no rows
    result = await session.execute(
        update(tables.PaymentRecord)
        .where(
            tables.PaymentRecord.id == payment.id,
            tables.PaymentRecord.status == 'pending'
        )
        .values({**values, tables.PaymentRecord.updated_at: datetime.now(timezone.utc)})
    )
    return result.rowcount == 1


async def _grant(
    session: AsyncSession,
    payment: tables.PaymentRecord,
    paid_amount: int | None,
    provider_invoice_ref: str | None,
    paid_at: datetime | None,
    payment_method: str | None = None,
    reviewed_by: str | None = None
) -> ReconciliationOutcome:
    if paid_amount != payment.amount:
        logger.error(
            f'amount mismatch for payment {payment.id} ("{payment.idempotency_token}"): '
            f'expected {payment.amount}, received {paid_amount}'
        )
        if not await _swap_status(session, payment, {tables.PaymentRecord.status: 'failed'}):
            return _already_processed(payment)

        return ReconciliationOutcome(
            kind=OutcomeKind.AMOUNT_MISMATCH,
            message=f'Amount mismatch: expected {payment.amount}, received {paid_amount}',
            payment_id=payment.id,
            status='failed',
            user_id=payment.user_ref,
            course_id=payment.course_ref
        )

    now = datetime.now(timezone.utc)
    values = {
        tables.PaymentRecord.status: 'paid',
        tables.PaymentRecord.paid_at: paid_at or now,
        tables.PaymentRecord.provider_invoice_ref: provider_invoice_ref or payment.provider_invoice_ref
    }
    if payment_method is not None:
        values[tables.PaymentRecord.payment_method] = payment_method
    if reviewed_by is not None:
        values[tables.PaymentRecord.reviewed_by] = reviewed_by

    if not await _swap_status(session, payment, values):
        return _already_processed(payment)

    enrollment = await session.scalar(
        select(tables.Enrollment)
        .where(
            tables.Enrollment.user_ref == payment.user_ref,
            tables.Enrollment.course_ref == payment.course_ref
        )
        .with_for_update()
    )

    if enrollment is None:
        enrollment = tables.Enrollment(
            user_ref=payment.user_ref,
            course_ref=payment.course_ref,
            status='active',
            enrolled_at=now,
            created_at=now
        )
        session.add(enrollment)
        await session.flush()
        logger.info(f'enrollment {enrollment.id} created for payment {payment.id}')
    elif enrollment.status != 'active':
        enrollment.status = 'active'
        enrollment.enrolled_at = now
        # Renewal grants unlimited access again
        enrollment.access_expires_at = None
        enrollment.updated_at = now
        logger.info(f'enrollment {enrollment.id} reactivated for payment {payment.id}')

    payment.enrollment_ref = enrollment.id

    logger.info(f'payment {payment.id} is paid, access granted via enrollment {enrollment.id}')
    return ReconciliationOutcome(
        kind=OutcomeKind.GRANTED,
        message='Access granted',
        payment_id=payment.id,
        status='paid',
        enrollment_id=enrollment.id,
        user_id=payment.user_ref,
        course_id=payment.course_ref
    )


async def _close(session: AsyncSession, payment: tables.PaymentRecord, provider_status: str) -> ReconciliationOutcome:
    status = 'expired' if provider_status == 'EXPIRED' else 'failed'

    if not await _swap_status(session, payment, {tables.PaymentRecord.status: status}):
        return _already_processed(payment)

    logger.info(f'payment {payment.id} closed as {status}')
    return ReconciliationOutcome(
        kind=OutcomeKind.CLOSED,
        message=f'Payment {status}',
        payment_id=payment.id,
        status=status,
        user_id=payment.user_ref,
        course_id=payment.course_ref
    )


@lru_cache
def get_reconciliation_service(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(db.engine.get_session_maker)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)]
) -> ReconciliationService:
    return ReconciliationService(session_maker=session_maker, publisher=publisher)
