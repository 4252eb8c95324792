from __future__ import annotations

import os
from typing import Iterator

import pytest

from entrabroker.config import BrokerSettings
from entrabroker.grants.base import TokenEndpoint
from tests.helpers import FakeSession


@pytest.fixture(autouse=True)
def clear_entra_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove ENTRA_* vars to prevent cross-test leakage.

    Yields:
        Iterator[None]: Context manager semantics for pytest.
    """
    to_clear = [k for k in os.environ.keys() if k.upper().startswith("ENTRA_")]
    for k in to_clear:
        monkeypatch.delenv(k, raising=False)
    yield


@pytest.fixture()
def settings() -> BrokerSettings:
    return BrokerSettings()


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def endpoint(settings: BrokerSettings, session: FakeSession) -> TokenEndpoint:
    return TokenEndpoint(settings, session)  # type: ignore[arg-type]
