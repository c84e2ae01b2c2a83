"""Shared fixtures: bundled schemas, a fixed clock and session factory."""
import pytest

from dpchain.binding import dialects
from dpchain.binding.xsd import load_bindings
from dpchain.chain.engine import DeploymentSession
from dpchain.config.credentials import PASSWORD_ENV
from dpchain.config.session import SessionConfig

from fakes import FIXED_TIME, FakeSleep, FakeTransport


@pytest.fixture
def bindings():
    """The bundled SOMA and AMP schemas, in load order."""
    schema_dir = dialects.SCHEMAS_DIR / dialects.DEFAULT_SCHEMA_SUBDIR
    return load_bindings([
        schema_dir / dialects.SOMA_MGMT_SCHEMA_NAME,
        schema_dir / dialects.AMP_MGMT_30_SCHEMA_NAME,
    ])


@pytest.fixture
def soma(bindings):
    return bindings[0]


@pytest.fixture
def amp(bindings):
    return bindings[1]


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIME


@pytest.fixture(autouse=True)
def no_password_env(monkeypatch):
    monkeypatch.delenv(PASSWORD_ENV, raising=False)


@pytest.fixture
def make_session(bindings, fixed_clock):
    """Factory for sessions wired to a FakeTransport and FakeSleep."""
    def factory(transport=None, sleep=None, cancel_token=None, **config):
        session_config = SessionConfig(host="dp-test", username="admin", password="secret", **config)
        return DeploymentSession(
            session_config,
            transport=transport if transport is not None else FakeTransport(),
            bindings=bindings,
            clock=fixed_clock,
            sleep=sleep if sleep is not None else FakeSleep(),
            cancel_token=cancel_token,
        )
    return factory
