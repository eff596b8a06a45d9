#!/usr/bin/env python3
"""
=====================================================================
Sensu Puppet Handler - Sensu Entity Deregistration
=====================================================================
Deletes a Sensu entity through the Sensu Go core/v2 API.

- Authenticates with an API key (Authorization: Key <api-key>)
- Optionally trusts a custom CA for the Sensu backend
- 2xx        -> DELETED
- other <500 -> ALREADY_ABSENT (the entity is already gone), redirects
  are not followed
- >=500      -> BackendError
- connection / TLS / timeout failures -> TransportError

No retries: the next failing keepalive re-invokes the handler.
=====================================================================
"""

import logging
import re
import ssl
from enum import Enum
from typing import Optional
from urllib.parse import quote

import requests

from handler_config import HandlerConfig
from handler_errors import BackendError, ConfigurationError, TransportError
from sensu_event import Event

logger = logging.getLogger(__name__)

ENTITY_API_PATH = '/api/core/v2/namespaces/{namespace}/entities/{name}'

_PEM_CERT_RE = re.compile(
    r'-----BEGIN CERTIFICATE-----(.+?)-----END CERTIFICATE-----',
    re.DOTALL
)


class DeletionOutcome(Enum):
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"


def load_ca_cert(path: str) -> bytes:
    """
    Read the Sensu CA certificate and check that it parses.

    Returns:
        DER bytes of the first certificate in the file

    Raises:
        ConfigurationError: unreadable file, bad PEM or invalid certificate
    """
    try:
        with open(path, 'rb') as f:
            raw = f.read()
    except OSError as e:
        raise ConfigurationError(f"unable to load sensu-ca-cert: {e}", field='sensu-ca-cert')

    # DER or other binary content is not PEM
    match = _PEM_CERT_RE.search(raw.decode('ascii', errors='replace'))
    if match is None:
        raise ConfigurationError("failed to decode sensu-ca-cert PEM", field='sensu-ca-cert')

    try:
        der = ssl.PEM_cert_to_DER_cert(match.group(0))
        ssl.create_default_context().load_verify_locations(cadata=der)
    except (ssl.SSLError, ValueError) as e:
        raise ConfigurationError(f"invalid sensu-ca-cert: {e}", field='sensu-ca-cert')

    return der


def build_sensu_session(config: HandlerConfig) -> requests.Session:
    """Create a requests session authenticated against the Sensu API."""
    if config.sensu_ca_cert:
        load_ca_cert(config.sensu_ca_cert)

    session = requests.Session()
    session.headers.update({
        'Authorization': f"Key {config.sensu_api_key}",
        'Accept': 'application/json',
    })

    if config.sensu_ca_cert:
        session.verify = config.sensu_ca_cert
    if config.puppet_insecure_skip_verify:
        logger.warning("TLS verification disabled for the Sensu API")
        session.verify = False

    return session


def entity_url(config: HandlerConfig, namespace: str, name: str) -> str:
    path = ENTITY_API_PATH.format(namespace=quote(namespace, safe=''), name=quote(name, safe=''))
    return config.sensu_api_url.rstrip('/') + path


def deregister_entity(
    session: requests.Session,
    config: HandlerConfig,
    event: Event
) -> DeletionOutcome:
    """
    Delete the event's entity from Sensu.

    Raises:
        TransportError: The Sensu API could not be reached
        BackendError: The Sensu API answered with a 5xx status
    """
    namespace = event.entity.namespace
    name = event.entity.name
    url = entity_url(config, namespace, name)

    logger.info(f"deleting entity ({namespace}/{name})")
    try:
        response = session.delete(url, timeout=config.http_timeout, allow_redirects=False)
    except requests.exceptions.Timeout:
        logger.error(f"Sensu API request timeout after {config.http_timeout}s")
        raise TransportError(f"timeout deleting entity after {config.http_timeout}s", backend='sensu')
    except requests.exceptions.RequestException as e:
        logger.error(f"Sensu API connection error: {e}")
        raise TransportError(f"error deleting entity: {e}", backend='sensu')

    with response:
        status = response.status_code
        if 200 <= status < 300:
            logger.info(f"entity deleted ({namespace}/{name})")
            return DeletionOutcome.DELETED

        if status < 500:
            logger.info(f"entity already deleted ({namespace}/{name}), status {status}")
            return DeletionOutcome.ALREADY_ABSENT

        body: Optional[str] = response.text[:200] if response.text else None
        logger.error(f"Sensu server error: {status} - {body}")
        raise BackendError(
            f"unexpected HTTP status {status} deleting entity {namespace}/{name}",
            backend='sensu',
            status_code=status
        )
