import logging
from typing import Annotated
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import ORJSONResponse
from starlette import status

from settings import xendit_settings
from services.webhook import parse_notification, verify_callback_token
from services.reconciliation import (
    OutcomeKind,
    ReconciliationService,
    get_reconciliation_service
)


logger = logging.getLogger('lms-billing-webhook')

router = APIRouter()


@router.post(
    path='/xendit',
    description=
    'Invoice notification from Xendit<br>'
    'Repeated notifications for the same `external_id` are acknowledged without side effects<br>'
    'Any status other than 200 makes Xendit retry the delivery later'
)
async def xendit_callback(
    request: Request,
    reconciliation_service: Annotated[ReconciliationService, Depends(get_reconciliation_service)],
    x_callback_token: Annotated[str | None, Header()] = None
) -> ORJSONResponse:
    verify_callback_token(x_callback_token, xendit_settings.callback_token)

    notification = parse_notification(request.headers.get('content-type'), await request.body())
    logger.info(
        f'notification for "{notification.idempotency_token}" with status "{notification.provider_status}"'
    )

    outcome = await reconciliation_service.reconcile(
        idempotency_token=notification.idempotency_token,
        provider_status=notification.provider_status,
        paid_amount=notification.paid_amount,
        provider_invoice_ref=notification.provider_invoice_ref,
        paid_at=notification.paid_at,
        payment_method=notification.payment_method
    )

    # Financial discrepancy, must be investigated rather than retried
    if outcome.kind == OutcomeKind.AMOUNT_MISMATCH:
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={'success': False, 'error': outcome.message, 'outcome': outcome.model_dump(mode='json')}
        )

    return ORJSONResponse(content={'success': True, 'outcome': outcome.model_dump(mode='json')})
