import sys
import asyncio
import pathlib
import pytest
import httpx
from asgi_lifespan import LifespanManager

sys.path.append(str(pathlib.Path(__file__).parent.parent/'src'))
sys.path.append(str(pathlib.Path(__file__).parent))

from settings import settings, db_settings, xendit_settings
from main import app


CALLBACK_TOKEN = 'test-callback-token'
ADMIN_TOKEN = 'test-admin-token'


@pytest.fixture(autouse=True)
def configure(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path):
    monkeypatch.setattr(db_settings, 'url', f'sqlite+aiosqlite:///{tmp_path/"billing.db"}')
    monkeypatch.setattr(xendit_settings, 'callback_token', CALLBACK_TOKEN)
    monkeypatch.setattr(xendit_settings, 'secret_key', 'xnd_development_test')
    monkeypatch.setattr(settings, 'admin_token', ADMIN_TOKEN)


@pytest.fixture(autouse=True)
async def run_migrations(configure):
    from alembic.config import Config
    from alembic import command

    alembic_cfg = Config(str(pathlib.Path(__file__).parent.parent/'alembic.ini'))
    alembic_cfg.set_main_option('shut_alembic_logger', 'true')

    # env.py runs its own event loop
    await asyncio.to_thread(command.upgrade, alembic_cfg, 'head')

    async with LifespanManager(app):
        yield


@pytest.fixture
async def api_client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url='http://tests') as client:
        yield client


@pytest.fixture
async def failing_api_client():
    # Unhandled errors are answered with 500 instead of being raised in the test
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app, raise_app_exceptions=False),
        base_url='http://tests'
    ) as client:
        yield client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {'x-admin-token': ADMIN_TOKEN, 'x-admin-ref': 'admin-1'}
