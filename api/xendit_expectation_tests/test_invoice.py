import httpx
from helpers import create_invoice, get_invoice, expire_invoice


def test_invoice(xendit_client: httpx.Client):
    response = create_invoice(xendit_client, amount=150000, external_id='inv_7_42_1000')
    assert response.status_code == 200, response.text
    response_json = response.json()

    assert response_json['status'] == 'PENDING', response.text
    assert response_json['external_id'] == 'inv_7_42_1000'
    assert response_json['amount'] == 150000
    assert response_json['currency'] == 'IDR'
    assert response_json['invoice_url'].startswith('https://'), response.text

    response = get_invoice(xendit_client, response_json['id'])
    assert response.status_code == 200, response.text
    assert response.json()['external_id'] == 'inv_7_42_1000'


def test_expire_invoice(xendit_client: httpx.Client):
    response = create_invoice(xendit_client, amount=150000)
    assert response.status_code == 200, response.text
    invoice_id = response.json()['id']

    response = expire_invoice(xendit_client, invoice_id)
    assert response.status_code == 200, response.text
    assert response.json()['status'] == 'EXPIRED', response.text


def test_invalid_amount(xendit_client: httpx.Client):
    response = create_invoice(xendit_client, amount=-1)
    assert response.status_code == 400, response.text
    assert response.json()['error_code'] == 'API_VALIDATION_ERROR'


def test_invalid_secret_key(xendit_client: httpx.Client):
    response = httpx.post(
        f'{xendit_client.base_url}v2/invoices',
        auth=httpx.BasicAuth('xnd_development_invalid', ''),
        json={'external_id': 'inv_0_0_0', 'amount': 150000}
    )
    assert response.status_code == 401, response.text
