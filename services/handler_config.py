#!/usr/bin/env python3
"""
=====================================================================
Sensu Puppet Handler - Configuration
=====================================================================
Builds the handler configuration from command line flags and environment
variables, applies per-event annotation overrides and validates the result
before any network call is made.

Precedence (highest first):
- annotation on the check   sensu.io/plugins/sensu-puppet-handler/config/<path>
- annotation on the entity  (same key)
- command line flag
- environment variable
- built-in default

Environment Variables:
    PUPPET_ENDPOINT: PuppetDB API endpoint URL
    PUPPET_CERT: Client certificate PEM signed by the Puppet CA
    PUPPET_KEY: Private key PEM for that certificate
    PUPPET_CA_CERT: Puppet CA certificate PEM
    PUPPET_INSECURE_SKIP_TLS_VERIFY: Skip TLS verification (default: false)
    PUPPET_NODE_NAME: Node name to query instead of the entity name
    SENSU_API_URL: Sensu API URL (default: http://localhost:8080)
    SENSU_API_KEY: Sensu API key
    SENSU_CA_CERT: Sensu CA certificate PEM
    HANDLER_HTTP_TIMEOUT: Per-request timeout in seconds (default: 10)
=====================================================================
"""

import logging
import os
import posixpath
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from handler_errors import ConfigurationError, InputError
from sensu_event import Event

logger = logging.getLogger(__name__)

# =====================================================================
# CONSTANTS
# =====================================================================

PLUGIN_NAME = 'sensu-puppet-handler'
ANNOTATION_KEYSPACE = 'sensu.io/plugins/sensu-puppet-handler/config'
DEFAULT_API_PATH = 'pdb/query/v4/nodes'
DEFAULT_SENSU_API_URL = 'http://localhost:8080'
DEFAULT_HTTP_TIMEOUT = 10.0

_TRUE_VALUES = ('true', '1', 't', 'yes', 'on')

# option path -> (config attribute, environment variable)
OPTIONS = {
    'endpoint': ('endpoint', 'PUPPET_ENDPOINT'),
    'cert': ('puppet_cert', 'PUPPET_CERT'),
    'key': ('puppet_key', 'PUPPET_KEY'),
    'ca-cert': ('puppet_ca_cert', 'PUPPET_CA_CERT'),
    'insecure-skip-tls-verify': ('puppet_insecure_skip_verify', 'PUPPET_INSECURE_SKIP_TLS_VERIFY'),
    'node-name': ('puppet_node_name', 'PUPPET_NODE_NAME'),
    'sensu-api-url': ('sensu_api_url', 'SENSU_API_URL'),
    'sensu-api-key': ('sensu_api_key', 'SENSU_API_KEY'),
    'sensu-ca-cert': ('sensu_ca_cert', 'SENSU_CA_CERT'),
    'timeout': ('http_timeout', 'HANDLER_HTTP_TIMEOUT'),
}


@dataclass
class HandlerConfig:
    """Operator supplied settings, validated once per invocation."""

    endpoint: str = ''
    puppet_cert: str = ''
    puppet_key: str = ''
    puppet_ca_cert: str = ''
    puppet_insecure_skip_verify: bool = False
    puppet_node_name: str = ''
    sensu_api_url: str = DEFAULT_SENSU_API_URL
    sensu_api_key: str = ''
    sensu_ca_cert: str = ''
    http_timeout: float = DEFAULT_HTTP_TIMEOUT


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _parse_timeout(value: Any) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"invalid HTTP timeout: {value!r}", field='timeout')
    if timeout <= 0:
        raise ConfigurationError(f"HTTP timeout must be positive: {timeout}", field='timeout')
    return timeout


def _set_option(config: HandlerConfig, attr: str, value: Any) -> None:
    if attr == 'puppet_insecure_skip_verify':
        value = _parse_bool(value)
    elif attr == 'http_timeout':
        value = _parse_timeout(value)
    else:
        value = str(value)
    setattr(config, attr, value)


def build_config(args: Any = None, environ: Optional[Mapping[str, str]] = None) -> HandlerConfig:
    """
    Build a HandlerConfig from parsed flags and the environment.

    Args:
        args: argparse.Namespace (or any object) whose attributes are named
              like the HandlerConfig fields; None means "not given".
        environ: Environment mapping, defaults to os.environ

    Returns:
        HandlerConfig (not yet validated)
    """
    env = os.environ if environ is None else environ
    config = HandlerConfig()

    for attr, env_name in OPTIONS.values():
        value = env.get(env_name)
        if value not in (None, ''):
            _set_option(config, attr, value)

        if args is not None:
            flag_value = getattr(args, attr, None)
            if flag_value is not None and flag_value is not False:
                _set_option(config, attr, flag_value)

    return config


def apply_annotation_overrides(config: HandlerConfig, event: Event) -> Dict[str, str]:
    """
    Override options from entity and check annotations.

    Check annotations are applied last, so they win over entity annotations.

    Returns:
        Mapping of overridden option path -> source ('entity' or 'check')
    """
    applied: Dict[str, str] = {}
    sources = []
    if event.entity is not None:
        sources.append(('entity', event.entity.annotations))
    if event.check is not None:
        sources.append(('check', event.check.annotations))

    for source, annotations in sources:
        for path, (attr, _env) in OPTIONS.items():
            key = f"{ANNOTATION_KEYSPACE}/{path}"
            if key in annotations:
                _set_option(config, attr, annotations[key])
                applied[path] = source

    for path, source in applied.items():
        logger.debug(f"Option '{path}' overridden by {source} annotation")

    return applied


# =====================================================================
# VALIDATION
# =====================================================================

def _split_url(raw: str, label: str):
    try:
        parts = urlsplit(raw)
        # Accessing the port forces validation of the netloc
        parts.port
    except ValueError as e:
        raise ConfigurationError(f"invalid {label} URL: {e}", details={'url': raw})
    return parts


def normalize_endpoint(endpoint: str) -> str:
    """
    Validate the PuppetDB endpoint and append the default API path if the
    URL has none. Idempotent.
    """
    parts = _split_url(endpoint, 'PuppetDB API endpoint')
    if not parts.scheme:
        raise ConfigurationError("invalid PuppetDB API endpoint URL, missing scheme", field='endpoint')
    if not parts.hostname:
        raise ConfigurationError("invalid PuppetDB API endpoint URL, missing host", field='endpoint')

    path = parts.path
    if path in ('', '/'):
        path = posixpath.join('/', DEFAULT_API_PATH)

    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def validate_event(event: Optional[Event]) -> None:
    """The event must carry both a check and an entity."""
    if event is None or event.check is None or event.entity is None:
        raise InputError("invalid event: a check and an entity are required")


def validate(config: HandlerConfig, event: Optional[Event]) -> None:
    """
    Validate the event shape and the configuration.

    The first missing or invalid option raises ConfigurationError. On
    success config.endpoint holds the normalized PuppetDB endpoint.
    """
    validate_event(event)

    if not config.endpoint:
        raise ConfigurationError("the PuppetDB API endpoint is required", field='endpoint')
    if not config.puppet_cert:
        raise ConfigurationError("the path to the SSL certificate is required", field='cert')
    if not config.puppet_key:
        raise ConfigurationError("the path to the private key is required", field='key')
    if not config.puppet_ca_cert:
        raise ConfigurationError("the path to the Puppet CA certificate is required", field='ca-cert')
    if not config.sensu_api_url:
        raise ConfigurationError("the Sensu API URL is required", field='sensu-api-url')
    if not config.sensu_api_key:
        raise ConfigurationError("the Sensu API key is required", field='sensu-api-key')

    config.endpoint = normalize_endpoint(config.endpoint)

    parts = _split_url(config.sensu_api_url, 'Sensu API')
    if not parts.scheme:
        raise ConfigurationError("invalid Sensu API URL, missing scheme", field='sensu-api-url')
    if not parts.hostname:
        raise ConfigurationError("invalid Sensu API URL, missing host", field='sensu-api-url')

    logger.debug(f"Configuration validated (endpoint={config.endpoint}, sensu_api_url={config.sensu_api_url})")
