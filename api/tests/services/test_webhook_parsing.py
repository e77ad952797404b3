import pytest
from datetime import datetime, timezone

from services.webhook import (
    AuthenticationError,
    CallbackTokenNotConfiguredError,
    FormBody,
    JsonBody,
    MalformedPayloadError,
    decode_body,
    normalize,
    parse_notification,
    verify_callback_token
)


def test_matching_callback_token():
    verify_callback_token('secret', 'secret')


@pytest.mark.parametrize('received', ('Secret', 'secret ', '', None))
def test_mismatching_callback_token(received: str | None):
    with pytest.raises(AuthenticationError):
        verify_callback_token(received, 'secret')


@pytest.mark.parametrize('expected', ('', None))
def test_unconfigured_callback_token(expected: str | None):
    with pytest.raises(CallbackTokenNotConfiguredError):
        verify_callback_token('secret', expected)


def test_decode_json_with_charset():
    body = decode_body('Application/JSON; charset=utf-8', b'{"external_id": "inv_1_2_3"}')
    assert body == JsonBody(data={'external_id': 'inv_1_2_3'})


def test_decode_form():
    body = decode_body('application/x-www-form-urlencoded', b'external_id=inv_1_2_3&status=PAID&id=')
    assert body == FormBody(data={'external_id': 'inv_1_2_3', 'status': 'PAID', 'id': ''})


@pytest.mark.parametrize(
    ('content_type', 'body'), (
        ('application/json', b'{"external_id": '),
        ('application/x-www-form-urlencoded', b'\xff\xfe'),
        ('text/plain', b'external_id=inv_1_2_3'),
        (None, b'{}')
    )
)
def test_undecodable_body(content_type: str | None, body: bytes):
    with pytest.raises(MalformedPayloadError):
        decode_body(content_type, body)


def test_normalize_json():
    notification = normalize(JsonBody(data={
        'id': '579c8d61f23fa4ca35e52da4',
        'external_id': 'inv_7_42_1000',
        'status': 'PAID',
        'amount': 150000,
        'paid_amount': 150000,
        'paid_at': '2026-10-18T09:30:00.000Z',
        'payment_method': 'BANK_TRANSFER'
    }))

    assert notification.idempotency_token == 'inv_7_42_1000'
    assert notification.provider_status == 'PAID'
    assert notification.paid_amount == 150000
    assert notification.provider_invoice_ref == '579c8d61f23fa4ca35e52da4'
    assert notification.paid_at == datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
    assert notification.payment_method == 'BANK_TRANSFER'


def test_paid_amount_takes_precedence_over_amount():
    notification = normalize(JsonBody(data={
        'external_id': 'inv_7_42_1000',
        'status': 'PAID',
        'amount': 160000,
        'paid_amount': 150000
    }))
    assert notification.paid_amount == 150000


def test_amount_fallback():
    notification = normalize(JsonBody(data={'external_id': 'inv_7_42_1000', 'status': 'PAID', 'amount': 150000}))
    assert notification.paid_amount == 150000


def test_no_amount_at_all():
    notification = normalize(JsonBody(data={'external_id': 'inv_7_42_1000', 'status': 'EXPIRED'}))
    assert notification.paid_amount is None
    assert notification.provider_invoice_ref is None
    assert notification.paid_at is None


def test_invoice_paid_event_without_status():
    notification = normalize(JsonBody(data={
        'event': 'invoice.paid',
        'external_id': 'inv_7_42_1000',
        'amount': 150000
    }))
    assert notification.provider_status == 'PAID'


def test_normalize_form():
    notification = normalize(FormBody(data={
        'external_id': 'inv_7_42_1000',
        'status': 'PAID',
        'paid_amount': '150000',
        'id': ''
    }))

    assert notification.paid_amount == 150000
    assert notification.provider_invoice_ref is None


@pytest.mark.parametrize(
    'body', (
        JsonBody(data=[{'external_id': 'inv_7_42_1000', 'status': 'PAID'}]),
        JsonBody(data='PAID'),
        JsonBody(data={'status': 'PAID'}),
        JsonBody(data={'external_id': 'inv_7_42_1000'}),
        JsonBody(data={'external_id': '', 'status': 'PAID'}),
        JsonBody(data={'external_id': 'inv_7_42_1000', 'status': 'PAID', 'paid_amount': 1500.5}),
        JsonBody(data={'external_id': 'inv_7_42_1000', 'status': 'PAID', 'paid_amount': True}),
        JsonBody(data={'external_id': 'inv_7_42_1000', 'status': 'PAID', 'amount': False}),
        JsonBody(data={'external_id': 'inv_7_42_1000', 'status': 'PAID', 'paid_at': 'yesterday'}),
        FormBody(data={'external_id': 'inv_7_42_1000', 'status': ''}),
        FormBody(data={'external_id': 'inv_7_42_1000', 'status': 'PAID', 'paid_amount': 'a lot'})
    )
)
def test_malformed_notification(body):
    with pytest.raises(MalformedPayloadError):
        normalize(body)


def test_parse_notification():
    notification = parse_notification(
        'application/json',
        b'{"external_id": "inv_7_42_1000", "status": "SETTLED", "paid_amount": 150000}'
    )
    assert notification.provider_status == 'SETTLED'
