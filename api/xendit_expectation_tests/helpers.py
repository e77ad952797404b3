import time
import httpx


# Plain functions, not fixtures, to keep typing simple

def create_invoice(
    xendit_client: httpx.Client,
    amount: int,
    external_id: str | None = None,
    invoice_duration: int = 7200
):
    # https://developers.xendit.co/api-reference/#create-invoice
    return xendit_client.post(
        url='/v2/invoices',
        json={
            'external_id': external_id or f'inv_0_0_{time.time_ns() // 1_000_000}',
            'amount': amount,
            'payer_email': 'expectations@example.com',
            'description': 'Expectation test',
            'invoice_duration': invoice_duration,
            'currency': 'IDR'
        }
    )


def get_invoice(xendit_client: httpx.Client, id: str):
    # https://developers.xendit.co/api-reference/#get-invoice
    return xendit_client.get(url=f'/v2/invoices/{id}')


def expire_invoice(xendit_client: httpx.Client, id: str):
    # https://developers.xendit.co/api-reference/#expire-invoice
    return xendit_client.post(url=f'/invoices/{id}/expire!')
