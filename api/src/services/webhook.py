import hmac
import logging
import orjson
from datetime import datetime
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl
from pydantic import BaseModel, ValidationError


logger = logging.getLogger('lms-billing-webhook')

CALLBACK_TOKEN_HEADER = 'x-callback-token'


class AuthenticationError(Exception):
    ...


class CallbackTokenNotConfiguredError(AuthenticationError):
    ...


class MalformedPayloadError(Exception):
    ...


@dataclass(frozen=True)
class JsonBody:
    data: Any


@dataclass(frozen=True)
class FormBody:
    data: dict[str, str]


WebhookBody = JsonBody | FormBody


class Notification(BaseModel):
    idempotency_token: str
    provider_status: str
    paid_amount: int | None = None
    provider_invoice_ref: str | None = None
    paid_at: datetime | None = None
    payment_method: str | None = None


def verify_callback_token(received: str | None, expected: str | None):
    if not expected:
        logger.error('callback token is not configured, refusing to process the notification')
        raise CallbackTokenNotConfiguredError()

    if received is None or not hmac.compare_digest(received.encode(), expected.encode()):
        logger.warning('invalid callback token received')
        raise AuthenticationError()


def decode_body(content_type: str | None, body: bytes) -> WebhookBody:
    media_type = (content_type or '').split(';')[0].strip().lower()

    if media_type == 'application/json':
        try:
            return JsonBody(data=orjson.loads(body))
        except orjson.JSONDecodeError as e:
            raise MalformedPayloadError(f'invalid json: {e}') from e

    if media_type == 'application/x-www-form-urlencoded':
        try:
            return FormBody(data=dict(parse_qsl(body.decode(), keep_blank_values=True, strict_parsing=bool(body))))
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedPayloadError(f'invalid form body: {e}') from e

    raise MalformedPayloadError(f'unsupported content type "{content_type}"')


def normalize(body: WebhookBody) -> Notification:
    match body:
        case JsonBody(data=dict() as data):
            fields = data
        case FormBody(data=data):
            fields = {key: value or None for key, value in data.items()}
        case _:
            raise MalformedPayloadError('notification body must be an object')

    status = fields.get('status')
    # Invoice events from the newer callback format carry no `status`
    if status is None and fields.get('event') == 'invoice.paid':
        status = 'PAID'

    if not fields.get('external_id') or not status:
        raise MalformedPayloadError('`external_id` and `status` are required')

    paid_amount = fields.get('paid_amount')
    if paid_amount is None:
        paid_amount = fields.get('amount')
    # JSON booleans would pass as 0 or 1
    if isinstance(paid_amount, bool):
        raise MalformedPayloadError('amount must be an integer')

    try:
        return Notification(
            idempotency_token=str(fields['external_id']),
            provider_status=str(status),
            paid_amount=paid_amount,
            provider_invoice_ref=str(fields['id']) if fields.get('id') is not None else None,
            paid_at=fields.get('paid_at'),
            payment_method=fields.get('payment_method')
        )
    except ValidationError as e:
        raise MalformedPayloadError(str(e)) from e


def parse_notification(content_type: str | None, body: bytes) -> Notification:
    return normalize(decode_body(content_type, body))
