#!/usr/bin/env python3
"""
=====================================================================
Sensu Puppet Handler - PuppetDB Node Lookup
=====================================================================
Answers one question: does the Puppet node behind a Sensu entity still
exist and is it active?

- Authenticates to PuppetDB with a client certificate (mutual TLS)
- GETs <endpoint>/<node-name>
- 200 with a non-null "deactivated" field  -> NOT_EXISTS
- 200 otherwise                            -> EXISTS
- 404                                      -> NOT_EXISTS
- anything else                            -> BackendError
- connection / TLS / timeout failures      -> TransportError

A PuppetDB outage must never look like a missing node, otherwise entities
would be deleted while PuppetDB is down.
=====================================================================
"""

import json
import logging
import ssl
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any, Optional

import requests

from handler_config import HandlerConfig
from handler_errors import BackendError, ConfigurationError, TransportError
from sensu_event import Event

logger = logging.getLogger(__name__)

# Entity label that overrides the node name for a single entity
NODE_NAME_LABEL = 'puppet_node_name'


class NodeStatus(Enum):
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


@dataclass
class PuppetNodeInfo:
    """The only part of the PuppetDB node document the handler needs."""

    deactivated: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PuppetNodeInfo":
        if not isinstance(data, dict):
            logger.warning(f"PuppetDB node document is not an object ({type(data).__name__}), ignoring it")
            return cls()
        return cls(deactivated=data.get('deactivated'))


def _status_text(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return str(status_code)


def build_puppetdb_session(config: HandlerConfig) -> requests.Session:
    """
    Create a requests session authenticated with the Puppet client cert.

    The certificate/key pair and the CA file are loaded up front so that
    unreadable or mismatched files fail as configuration errors before any
    request is made.
    """
    try:
        ssl.create_default_context().load_cert_chain(config.puppet_cert, config.puppet_key)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(
            f"could not read the certificate/key: {e}",
            field='cert',
            details={'cert': config.puppet_cert, 'key': config.puppet_key}
        )

    try:
        with open(config.puppet_ca_cert, 'rb') as f:
            f.read()
    except OSError as e:
        raise ConfigurationError(f"could not read the CA certificate: {e}", field='ca-cert')

    session = requests.Session()
    session.cert = (config.puppet_cert, config.puppet_key)
    if config.puppet_insecure_skip_verify:
        logger.warning("TLS verification disabled for PuppetDB")
        session.verify = False
    else:
        session.verify = config.puppet_ca_cert
    session.headers.update({'Accept': 'application/json'})
    return session


def resolve_node_name(config: HandlerConfig, event: Event) -> str:
    """
    Pick the Puppet node name for the event's entity.

    Order: entity label "puppet_node_name", then the configured node name,
    then the entity name.
    """
    label = event.entity.labels.get(NODE_NAME_LABEL)
    if label:
        return label
    if config.puppet_node_name:
        return config.puppet_node_name
    return event.entity.name


def node_exists(session: requests.Session, config: HandlerConfig, event: Event) -> NodeStatus:
    """
    Query PuppetDB for the node backing the event's entity.

    Returns:
        NodeStatus.EXISTS or NodeStatus.NOT_EXISTS

    Raises:
        TransportError: PuppetDB could not be reached
        BackendError: Unexpected status code or undecodable body
    """
    name = resolve_node_name(config, event)
    url = f"{config.endpoint.rstrip('/')}/{name}"

    try:
        response = session.get(url, timeout=config.http_timeout)
    except requests.exceptions.Timeout:
        logger.error(f"PuppetDB request timeout after {config.http_timeout}s")
        raise TransportError(f"timeout querying PuppetDB after {config.http_timeout}s", backend='puppetdb')
    except requests.exceptions.RequestException as e:
        logger.error(f"error getting puppet node: {e}")
        raise TransportError(f"error getting puppet node: {e}", backend='puppetdb')

    with response:
        if response.status_code == HTTPStatus.OK:
            try:
                info = PuppetNodeInfo.from_dict(response.json())
            except (json.JSONDecodeError, ValueError) as e:
                logger.error(f"puppet node returned invalid response: {e}")
                raise BackendError(
                    f"puppet node returned invalid response: {e}",
                    backend='puppetdb',
                    status_code=response.status_code
                )

            logger.info(f"puppet node {name!r} exists, checking if deactivated")
            if info.deactivated is not None:
                logger.info(f"puppet node {name!r} was deactivated at {info.deactivated}")
                return NodeStatus.NOT_EXISTS
            return NodeStatus.EXISTS

        if response.status_code == HTTPStatus.NOT_FOUND:
            logger.info(f"puppet node {name!r} does not exist")
            return NodeStatus.NOT_EXISTS

        raise BackendError(
            f"unexpected HTTP status {_status_text(response.status_code)} while querying PuppetDB",
            backend='puppetdb',
            status_code=response.status_code
        )
