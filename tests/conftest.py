from __future__ import annotations

from collections.abc import Iterator

import pytest

from sai_client.config import get_settings


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    root = tmp_path_factory.mktemp("sai_test")

    # Keep developer `.env` / `.env.secrets` files out of the test run.
    monkeypatch.chdir(root)
    monkeypatch.setenv("SAI_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SAI_AUTH_SCHEME", "Bearer")
    monkeypatch.setenv("SAI_VALIDATE_SSL", "1")
    for name in (
        "SAI_LOG_DIR",
        "SAI_CLIENT_ID",
        "SAI_CLIENT_SECRET",
        "SAI_ACCESS_TOKEN",
        "SAI_REFRESH_TOKEN",
        "SAI_OIDC_ISSUER",
        "STRICT_SECRETS",
        "ENV",
        "APP_ENV",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
