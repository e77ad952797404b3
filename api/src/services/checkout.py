import time
import httpx
import logging
from functools import lru_cache
from fastapi import Depends
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Annotated
from pydantic import BaseModel, HttpUrl
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

import db.engine
import tables
from settings import settings, xendit_settings


logger = logging.getLogger('lms-billing-checkout')

ENROLLED_STATUSES = ('active', 'completed')


class AlreadyEnrolledError(Exception):
    ...


class InvoiceCreationError(Exception):
    ...


class CheckoutInfo(BaseModel):
    payment_id: int
    idempotency_token: str
    invoice_url: HttpUrl


def make_idempotency_token(course_id: int, user_id: int) -> str:
    return f'inv_{course_id}_{user_id}_{time.time_ns() // 1_000_000}'


@dataclass(frozen=True)
class CheckoutService:
    session_maker: async_sessionmaker[AsyncSession]
    xendit_client: httpx.AsyncClient

    async def is_enrolled(self, user_id: int, course_id: int) -> bool:
        async with self.session_maker() as session:
            enrollment_id = await session.scalar(
                select(tables.Enrollment.id)
                .where(
                    tables.Enrollment.user_ref == user_id,
                    tables.Enrollment.course_ref == course_id,
                    tables.Enrollment.status.in_(ENROLLED_STATUSES)
                )
            )
        return enrollment_id is not None

    async def checkout(
        self,
        user_id: int,
        course_id: int,
        amount: int,
        email: str,
        name: str,
        course_title: str | None = None
    ) -> CheckoutInfo:
        if await self.is_enrolled(user_id, course_id):
            raise AlreadyEnrolledError(f'user {user_id} is already enrolled in course {course_id}')

        if not xendit_settings.secret_key:
            raise InvoiceCreationError('xendit secret key is not configured')

        idempotency_token = make_idempotency_token(course_id, user_id)
        given_names, _, surname = name.partition(' ')

        # Committed before the Xendit call, a write transaction mustn't wait on the network
        async with db.engine.transaction(self.session_maker) as session:
            payment_id = await session.scalar(
                insert(tables.PaymentRecord)
                .values({
                    tables.PaymentRecord.idempotency_token: idempotency_token,
                    tables.PaymentRecord.user_ref: user_id,
                    tables.PaymentRecord.course_ref: course_id,
                    tables.PaymentRecord.amount: amount,
                    tables.PaymentRecord.currency: settings.invoice_currency,
                    tables.PaymentRecord.status: 'pending',
                    tables.PaymentRecord.payment_method: 'Xendit',
                    tables.PaymentRecord.created_at: datetime.now(timezone.utc)
                })
                .returning(tables.PaymentRecord.id)
            )

        # https://developers.xendit.co/api-reference/#create-invoice
        try:
            response = await self.xendit_client.post(
                url='/v2/invoices',
                json={
                    'external_id': idempotency_token,
                    'amount': amount,
                    'payer_email': email,
                    'description': f'Course purchase: {course_title or course_id}',
                    'invoice_duration': settings.invoice_duration_sec,
                    'customer': {
                        'given_names': given_names or 'User',
                        'surname': surname or email,
                        'email': email
                    },
                    'success_redirect_url':
                        f'{settings.app_base_url}/student/dashboard/my-courses?payment=success&courseId={course_id}',
                    'failure_redirect_url': f'{settings.app_base_url}/courses/{course_id}/checkout?payment=failed',
                    'currency': settings.invoice_currency,
                    'payment_methods': settings.invoice_payment_methods
                }
            )
        except httpx.HTTPError as e:
            await self._mark_failed(payment_id)
            raise InvoiceCreationError(f'couldn\'t reach xendit: {e}') from e

        if response.status_code != 200:
            await self._mark_failed(payment_id)
            raise InvoiceCreationError(f'got status {response.status_code} from xendit: {response.text}')

        response_json = response.json()

        async with db.engine.transaction(self.session_maker) as session:
            await session.execute(
                update(tables.PaymentRecord)
                .where(tables.PaymentRecord.id == payment_id)
                .values({
                    tables.PaymentRecord.provider_invoice_ref: response_json['id'],
                    tables.PaymentRecord.updated_at: datetime.now(timezone.utc)
                })
            )

        logger.info(f'created payment {payment_id} ("{idempotency_token}") with invoice {response_json["id"]}')
        return CheckoutInfo(
            payment_id=payment_id,
            idempotency_token=idempotency_token,
            invoice_url=HttpUrl(response_json['invoice_url'])
        )

    async def _mark_failed(self, payment_id: int):
        # No invoice exists, so no notification can settle this payment
        async with db.engine.transaction(self.session_maker) as session:
            await session.execute(
                update(tables.PaymentRecord)
                .where(
                    tables.PaymentRecord.id == payment_id,
                    tables.PaymentRecord.status == 'pending'
                )
                .values({
                    tables.PaymentRecord.status: 'failed',
                    tables.PaymentRecord.updated_at: datetime.now(timezone.utc)
                })
            )
        logger.warning(f'payment {payment_id} marked failed, its invoice wasn\'t created')


@lru_cache
def get_xendit_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=xendit_settings.base_url,
        # Secret key is the username, the password is empty
        auth=httpx.BasicAuth(xendit_settings.secret_key or '', ''),
        timeout=xendit_settings.connection_timeout_sec
    )


@lru_cache
def get_checkout_service(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(db.engine.get_session_maker)],
    xendit_client: Annotated[httpx.AsyncClient, Depends(get_xendit_client)]
) -> CheckoutService:
    return CheckoutService(session_maker=session_maker, xendit_client=xendit_client)
