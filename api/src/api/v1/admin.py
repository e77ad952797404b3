import hmac
from datetime import date
from typing import Annotated
from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query
from starlette import status

import tables
from settings import settings
from services.payment import (
    CourseSales,
    DailySales,
    MonthlySales,
    PaymentInfo,
    PaymentService,
    SalesStats,
    get_payment_service
)
from services.reconciliation import (
    ReconciliationOutcome,
    ReconciliationService,
    get_reconciliation_service
)


def require_admin(
    x_admin_token: Annotated[str | None, Header()] = None,
    x_admin_ref: Annotated[str | None, Header()] = None
) -> str:
    """Returns the administrator reference recorded on manual decisions."""
    if (
        not settings.admin_token
        or x_admin_token is None
        or not hmac.compare_digest(x_admin_token.encode(), settings.admin_token.encode())
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Administrator access required')

    return x_admin_ref or 'admin'


router = APIRouter(dependencies=[Depends(require_admin)])


@router.get(
    path='/payments',
    description='Payments with the given status, newest first'
)
async def list_payments(
    payment_service: Annotated[PaymentService, Depends(get_payment_service)],
    payment_status: Annotated[tables.payment.Status, Query(alias='status')] = 'pending'
) -> list[PaymentInfo]:
    return await payment_service.list_by_status(payment_status)


@router.get(
    path='/sales',
    description='Paid payments, optionally within a `paid_at` date range (both ends included)'
)
async def list_sales(
    payment_service: Annotated[PaymentService, Depends(get_payment_service)],
    start: Annotated[date | None, Query()] = None,
    end: Annotated[date | None, Query()] = None
) -> list[PaymentInfo]:
    return await payment_service.list_sales(start=start, end=end)


@router.get(
    path='/stats',
    description='Paid sales total and enrollment counts'
)
async def get_stats(
    payment_service: Annotated[PaymentService, Depends(get_payment_service)]
) -> SalesStats:
    return await payment_service.get_stats()


@router.get(
    path='/sales/monthly',
    description='Paid sales total per calendar month'
)
async def list_monthly_sales(
    payment_service: Annotated[PaymentService, Depends(get_payment_service)]
) -> list[MonthlySales]:
    return await payment_service.list_monthly_sales()


@router.get(
    path='/sales/by-course',
    description='Best selling courses by the number of paid payments'
)
async def list_top_courses(
    payment_service: Annotated[PaymentService, Depends(get_payment_service)],
    limit: Annotated[int, Query(gt=0, le=100)] = 10
) -> list[CourseSales]:
    return await payment_service.list_top_courses(limit=limit)


@router.get(
    path='/sales/trend',
    description='Paid sales total per day, 30 last days by default'
)
async def list_daily_sales(
    payment_service: Annotated[PaymentService, Depends(get_payment_service)],
    days: Annotated[int, Query(gt=0, le=366)] = 30
) -> list[DailySales]:
    return await payment_service.list_daily_sales(days=days)


@router.post(
    path='/payments/{payment_id}/confirm',
    description=
    'Confirms a pending payment on out-of-band proof (bank transfer)<br>'
    'Grants course access exactly like a `PAID` notification with the stored amount'
)
async def confirm_payment(
    payment_id: Annotated[int, Path()],
    admin_ref: Annotated[str, Depends(require_admin)],
    reconciliation_service: Annotated[ReconciliationService, Depends(get_reconciliation_service)]
) -> ReconciliationOutcome:
    return await reconciliation_service.confirm_manually(payment_id=payment_id, admin_ref=admin_ref)


@router.post(
    path='/payments/{payment_id}/reject',
    description='Marks a pending payment as failed, settled payments can\'t be rejected'
)
async def reject_payment(
    payment_id: Annotated[int, Path()],
    admin_ref: Annotated[str, Depends(require_admin)],
    reconciliation_service: Annotated[ReconciliationService, Depends(get_reconciliation_service)]
) -> ReconciliationOutcome:
    return await reconciliation_service.reject_manually(payment_id=payment_id, admin_ref=admin_ref)
