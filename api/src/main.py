import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
from starlette import status

import db.engine
import services.events
from api.v1 import admin, checkout, webhook
from settings import db_settings
from services.checkout import AlreadyEnrolledError, InvoiceCreationError, get_xendit_client
from services.reconciliation import InvalidStateError, PaymentNotFoundError
from services.webhook import AuthenticationError, MalformedPayloadError


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(name)s %(levelname)s: %(message)s'
)

logger = logging.getLogger('lms-billing')


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.engine.init(db_settings.get_url('psycopg'))
    await services.events.start()

    yield

    await services.events.stop()
    await get_xendit_client().aclose()
    get_xendit_client.cache_clear()
    await db.engine.dispose()


app = FastAPI(
    title='LMS Billing',
    lifespan=lifespan,
    docs_url='/api/openapi',
    openapi_url='/api/openapi.json',
    default_response_class=ORJSONResponse
)

app.include_router(webhook.router, prefix='/api/v1/payment/callback', tags=['webhook'])
app.include_router(checkout.router, prefix='/api/v1', tags=['checkout'])
app.include_router(admin.router, prefix='/api/v1/admin', tags=['admin'])


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return ORJSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={'success': False, 'error': 'Invalid callback token'}
    )


@app.exception_handler(MalformedPayloadError)
async def malformed_payload_handler(request: Request, exc: MalformedPayloadError):
    logger.warning(f'malformed notification: {exc}')
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'success': False, 'error': 'Invalid payload', 'detail': str(exc)}
    )


@app.exception_handler(PaymentNotFoundError)
async def payment_not_found_handler(request: Request, exc: PaymentNotFoundError):
    return ORJSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={'success': False, 'error': str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return ORJSONResponse(status_code=status.HTTP_409_CONFLICT, content={'success': False, 'error': str(exc)})


@app.exception_handler(AlreadyEnrolledError)
async def already_enrolled_handler(request: Request, exc: AlreadyEnrolledError):
    return ORJSONResponse(status_code=status.HTTP_409_CONFLICT, content={'success': False, 'error': str(exc)})


@app.exception_handler(InvoiceCreationError)
async def invoice_creation_handler(request: Request, exc: InvoiceCreationError):
    logger.error(f'invoice creation failed: {exc}')
    return ORJSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={'success': False, 'error': str(exc)})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    # Non-200 makes Xendit redeliver the notification later
    logger.exception(f'unhandled error on {request.method} {request.url.path}')
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'success': False, 'error': 'Internal Server Error'}
    )
