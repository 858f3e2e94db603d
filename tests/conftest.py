import os

import pytest

# Environment variables to clear for isolated tests
BOARDFILES_ENV_VARS = [
    "BOARDFILES_SUPABASE_URL",
    "BOARDFILES_API_KEY",
    "BOARDFILES_API_URL",
    "BOARDFILES_EMAIL",
    "BOARDFILES_PASSWORD",
    "BOARDFILES_CACHE_DIR",
    "BOARDFILES_CACHE_MAX_BYTES",
    "BOARDFILES_STORAGE_QUOTA_BYTES",
    "BOARDFILES_SIGNED_URL_TTL",
    "BOARDFILES_SIGNED_URL_REFRESH_BUFFER",
    "BOARDFILES_REQUEST_TIMEOUT",
    "STORAGE_QUOTA_BYTES",
]


@pytest.fixture
def clean_env():
    """Clear all BOARDFILES_ environment variables for isolated tests."""
    original = {k: os.environ.get(k) for k in BOARDFILES_ENV_VARS}
    for k in BOARDFILES_ENV_VARS:
        os.environ.pop(k, None)
    yield
    # Restore original values
    for k, v in original.items():
        if v is not None:
            os.environ[k] = v
        else:
            os.environ.pop(k, None)
