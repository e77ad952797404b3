import sys
import pytest
import pathlib
import httpx

sys.path.append(str(pathlib.Path(__file__).parent.parent/'src'))
sys.path.append(str(pathlib.Path(__file__).parent))


@pytest.fixture
def xendit_client():
    from settings import xendit_settings
    if not xendit_settings.secret_key:
        pytest.skip('xendit sandbox secret key is not configured')

    with httpx.Client(
        base_url=xendit_settings.base_url,
        auth=httpx.BasicAuth(xendit_settings.secret_key, ''),
        timeout=30.0
    ) as client:
        yield client
