#!/usr/bin/env python3
"""
Sensu Puppet Handler - Vault Secret Retrieval

Optional: when VAULT_ADDR and VAULT_ROLE_ID are set and no Sensu API key was
supplied by flag or environment, the key is read from a Vault KV v2 secret
using AppRole authentication.

Environment Variables:
    VAULT_ADDR: Vault server URL
    VAULT_ROLE_ID: AppRole role id
    VAULT_SECRET_ID_FILE: File holding the AppRole secret id
                          (default: /etc/sensu/secrets/vault_secret_id)
    VAULT_SECRETS_PATH: KV v2 path (default: secret/sensu-puppet-handler)
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

import hvac
import requests
from hvac.exceptions import VaultError

from handler_config import HandlerConfig
from handler_errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SECRET_ID_FILE = '/etc/sensu/secrets/vault_secret_id'
DEFAULT_SECRETS_PATH = 'secret/sensu-puppet-handler'
API_KEY_FIELD = 'SENSU_API_KEY'


@dataclass
class VaultSettings:
    addr: str
    role_id: str
    secret_id_file: str = DEFAULT_SECRET_ID_FILE
    secrets_path: str = DEFAULT_SECRETS_PATH

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Optional["VaultSettings"]:
        """Returns None unless both VAULT_ADDR and VAULT_ROLE_ID are set."""
        env = os.environ if environ is None else environ
        addr = env.get('VAULT_ADDR')
        role_id = env.get('VAULT_ROLE_ID')
        if not addr or not role_id:
            return None
        return cls(
            addr=addr,
            role_id=role_id,
            secret_id_file=env.get('VAULT_SECRET_ID_FILE', DEFAULT_SECRET_ID_FILE),
            secrets_path=env.get('VAULT_SECRETS_PATH', DEFAULT_SECRETS_PATH),
        )


def _split_mount(secrets_path: str):
    # "secret/sensu-puppet-handler" -> mount "secret", path "sensu-puppet-handler"
    mount, _, path = secrets_path.strip('/').partition('/')
    if not path:
        return 'secret', mount
    return mount, path


def fetch_sensu_api_key(settings: VaultSettings) -> str:
    """
    Log in to Vault with AppRole and read the Sensu API key.

    Raises:
        ConfigurationError: on any Vault or secret-id file failure
    """
    logger.info(f"Connecting to Vault at {settings.addr}...")
    try:
        with open(settings.secret_id_file, 'r') as f:
            secret_id = f.read().strip()
    except OSError as e:
        raise ConfigurationError(f"Vault secret ID file not readable: {e}", field='vault')

    if not secret_id:
        raise ConfigurationError("Vault secret ID file is empty", field='vault')

    try:
        client = hvac.Client(url=settings.addr)
        client.auth.approle.login(role_id=settings.role_id, secret_id=secret_id)
        if not client.is_authenticated():
            raise ConfigurationError("Vault authentication failed", field='vault')

        mount, path = _split_mount(settings.secrets_path)
        response = client.secrets.kv.v2.read_secret_version(path=path, mount_point=mount)
        data = response['data']['data']
    except ConfigurationError:
        raise
    except (VaultError, requests.exceptions.RequestException, KeyError, TypeError) as e:
        raise ConfigurationError(f"failed to fetch secrets from Vault: {e}", field='vault')

    api_key = data.get(API_KEY_FIELD)
    if not api_key:
        raise ConfigurationError(f"{API_KEY_FIELD} not found in Vault", field='vault')

    logger.info("Successfully loaded Sensu API key from Vault")
    return api_key


def populate_secrets(config: HandlerConfig, environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Fill config.sensu_api_key from Vault when it is empty and Vault is configured.

    Returns:
        True if the key was loaded from Vault
    """
    if config.sensu_api_key:
        return False
    settings = VaultSettings.from_env(environ)
    if settings is None:
        return False
    config.sensu_api_key = fetch_sensu_api_key(settings)
    return True
