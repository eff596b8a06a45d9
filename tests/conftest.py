# =====================================================================
# Sensu Puppet Handler Pytest Configuration and Fixtures
# =====================================================================
# Shared fixtures for all tests. Service modules live in services/ and are
# imported as top-level modules.
# =====================================================================

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'services'))

import pytest
from unittest.mock import MagicMock, Mock

from handler_config import HandlerConfig
from sensu_event import Check, Entity, Event

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), 'fixtures')


# --- Certificate Fixtures ---

@pytest.fixture
def client_cert_path():
    """Self-signed certificate, also usable as a CA bundle"""
    return os.path.join(FIXTURES_DIR, 'client-cert.pem')


@pytest.fixture
def client_key_path():
    return os.path.join(FIXTURES_DIR, 'client-key.pem')


# --- Configuration ---

@pytest.fixture
def handler_config():
    """A complete, valid configuration"""
    return HandlerConfig(
        endpoint="http://127.0.0.1",
        puppet_cert="cert.pem",
        puppet_key="key.pem",
        puppet_ca_cert="ca.pem",
        sensu_api_url="http://localhost:8080",
        sensu_api_key="xxxxxxxxxx",
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the handler reads from the environment"""
    for name in (
        'PUPPET_ENDPOINT', 'PUPPET_CERT', 'PUPPET_KEY', 'PUPPET_CA_CERT',
        'PUPPET_INSECURE_SKIP_TLS_VERIFY', 'PUPPET_NODE_NAME', 'SENSU_API_URL',
        'SENSU_API_KEY', 'SENSU_CA_CERT', 'HANDLER_HTTP_TIMEOUT',
        'VAULT_ADDR', 'VAULT_ROLE_ID', 'VAULT_SECRET_ID_FILE', 'VAULT_SECRETS_PATH',
        'PROMETHEUS_PUSHGATEWAY', 'LOG_JSON_ENABLED', 'LOG_LEVEL',
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# --- Sample Data Fixtures ---

@pytest.fixture
def keepalive_event():
    """Failing keepalive for entity default/foo"""
    return Event(
        check=Check(name="keepalive"),
        entity=Entity(namespace="default", name="foo"),
        id="3c8a5b0e-1b2f-4f6e-9d1a-0f2e4b6c8d10",
    )


@pytest.fixture
def check_event():
    """Failing non-keepalive check for entity default/foo"""
    return Event(
        check=Check(name="check-cpu"),
        entity=Entity(namespace="default", name="foo"),
    )


@pytest.fixture
def sample_event_document():
    """Sensu Go event as delivered on stdin"""
    return {
        "id": "3c8a5b0e-1b2f-4f6e-9d1a-0f2e4b6c8d10",
        "timestamp": 1700000000,
        "entity": {
            "entity_class": "agent",
            "system": {"hostname": "foo"},
            "metadata": {
                "name": "foo",
                "namespace": "default",
                "labels": {"region": "us-west-1"},
            },
        },
        "check": {
            "status": 2,
            "output": "No keepalive sent from foo for 180 seconds",
            "metadata": {"name": "keepalive", "namespace": "default"},
        },
    }


# --- HTTP Helpers ---

def make_response(status_code, json_body=None, text=''):
    """Mock requests.Response usable as a context manager"""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_body, Exception):
        response.json.side_effect = json_body
    else:
        response.json.return_value = json_body
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


@pytest.fixture
def mock_session():
    """Mock requests.Session"""
    return Mock()


# --- Pytest Configuration ---

def pytest_configure(config):
    """Pytest configuration hook"""
    config.addinivalue_line(
        "markers", "unit: Unit tests (mock all external dependencies)"
    )
