#!/usr/bin/env python3
"""
=====================================================================
Sensu Puppet Handler
=====================================================================
Deregisters Sensu entities whose Puppet node no longer exists.

Invoked by Sensu once per event (registered in the keepalive handler set),
with the event JSON on stdin. For a failing keepalive it:
- Validates the configuration and the event
- Looks the node up in PuppetDB over mutual TLS
- Deletes the Sensu entity if the node is gone or deactivated

Non-keepalive events are ignored. Every error exits 1 with one diagnostic
line on stderr; there are no retries, the next failing keepalive triggers
the handler again.

Version: 1.0.0
=====================================================================
"""

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass
from typing import List, Optional, TextIO

from handler_config import (
    DEFAULT_SENSU_API_URL,
    PLUGIN_NAME,
    HandlerConfig,
    apply_annotation_overrides,
    build_config,
    validate,
)
from handler_errors import HandlerError, InputError
from handler_metrics import (
    METRIC_EVENTS_TOTAL,
    METRIC_HANDLER_DURATION,
    METRIC_PUPPETDB_LOOKUPS_TOTAL,
    METRIC_SENSU_DELETIONS_TOTAL,
    push_metrics,
)
from logging_utils import CorrelationID, setup_json_logging
from puppetdb_client import NodeStatus, build_puppetdb_session, node_exists
from sensu_client import DeletionOutcome, build_sensu_session, deregister_entity
from sensu_event import Event, event_from_dict
from vault_secrets import populate_secrets

__version__ = "1.0.0"

logger = logging.getLogger(__name__)

KEEPALIVE_CHECK_NAME = 'keepalive'

OUTCOME_SKIPPED = 'skipped'
OUTCOME_NODE_EXISTS = 'node_exists'
OUTCOME_DELETED = 'deleted'
OUTCOME_ALREADY_ABSENT = 'already_absent'
OUTCOME_FAILED = 'failed'


@dataclass
class HandlerResult:
    """Terminal state of one handler run."""
    outcome: str
    node_name: Optional[str] = None


# =====================================================================
# CORE PROCESSING LOGIC
# =====================================================================

def lookup_node(config: HandlerConfig, event: Event) -> NodeStatus:
    with build_puppetdb_session(config) as session:
        try:
            status = node_exists(session, config, event)
        except HandlerError:
            METRIC_PUPPETDB_LOOKUPS_TOTAL.labels(result='error').inc()
            raise
    METRIC_PUPPETDB_LOOKUPS_TOTAL.labels(result=status.value).inc()
    return status


def delete_entity(config: HandlerConfig, event: Event) -> DeletionOutcome:
    with build_sensu_session(config) as session:
        try:
            outcome = deregister_entity(session, config, event)
        except HandlerError:
            METRIC_SENSU_DELETIONS_TOTAL.labels(result='error').inc()
            raise
    METRIC_SENSU_DELETIONS_TOTAL.labels(result=outcome.value).inc()
    return outcome


def handle_event(config: HandlerConfig, event: Event, apply_overrides: bool = True) -> HandlerResult:
    """
    Run the handler for one event.

    Start -> Validated -> Filtered -> Resolved -> Done. Any HandlerError
    raised along the way propagates unchanged. Pass apply_overrides=False
    when the caller already applied the event annotations to config.
    """
    if apply_overrides and event.check is not None and event.entity is not None:
        apply_annotation_overrides(config, event)
    validate(config, event)

    if event.check.name != KEEPALIVE_CHECK_NAME:
        logger.info("received non-keepalive event, not checking for puppet node")
        return HandlerResult(outcome=OUTCOME_SKIPPED)

    status = lookup_node(config, event)
    if status == NodeStatus.EXISTS:
        logger.info(f"puppet node for entity {event.entity.namespace}/{event.entity.name} exists, nothing to do")
        return HandlerResult(outcome=OUTCOME_NODE_EXISTS)

    outcome = delete_entity(config, event)
    if outcome == DeletionOutcome.DELETED:
        return HandlerResult(outcome=OUTCOME_DELETED)
    return HandlerResult(outcome=OUTCOME_ALREADY_ABSENT)


def read_event(stream: TextIO) -> Event:
    """Decode the Sensu event document from stdin."""
    raw = stream.read()
    if not raw.strip():
        raise InputError("failed to read event: stdin is empty")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputError(f"failed to unmarshal STDIN data: {e}")
    return event_from_dict(data)


# =====================================================================
# COMMAND LINE
# =====================================================================

def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments. Unset flags stay None so the environment applies."""
    parser = argparse.ArgumentParser(
        prog=PLUGIN_NAME,
        description="Deregister Sensu entities without an associated Puppet node"
    )
    parser.add_argument(
        "-e", "--endpoint", dest="endpoint",
        help="the PuppetDB API endpoint (URL). If an API path is not specified, "
             "/pdb/query/v4/nodes/ will be used (env: PUPPET_ENDPOINT)"
    )
    parser.add_argument(
        "--cert", dest="puppet_cert",
        help="path to the SSL certificate PEM file signed by your site's Puppet CA (env: PUPPET_CERT)"
    )
    parser.add_argument(
        "--key", dest="puppet_key",
        help="path to the private key PEM file for that certificate (env: PUPPET_KEY)"
    )
    parser.add_argument(
        "--ca-cert", dest="puppet_ca_cert",
        help="path to the site's Puppet CA certificate PEM file (env: PUPPET_CA_CERT)"
    )
    parser.add_argument(
        "--insecure-skip-tls-verify", dest="puppet_insecure_skip_verify", action="store_true",
        default=None,
        help="skip TLS verification for Puppet and sensu-backend (env: PUPPET_INSECURE_SKIP_TLS_VERIFY)"
    )
    parser.add_argument(
        "--node-name", dest="puppet_node_name",
        help="node name to use for the entity when querying PuppetDB (env: PUPPET_NODE_NAME)"
    )
    parser.add_argument(
        "-u", "--sensu-api-url", dest="sensu_api_url",
        help=f"The Sensu API URL (default: {DEFAULT_SENSU_API_URL}, env: SENSU_API_URL)"
    )
    parser.add_argument(
        "-a", "--sensu-api-key", dest="sensu_api_key",
        help="The Sensu API key (env: SENSU_API_KEY)"
    )
    parser.add_argument(
        "-c", "--sensu-ca-cert", dest="sensu_ca_cert",
        help="The Sensu Go CA Certificate (env: SENSU_CA_CERT)"
    )
    parser.add_argument(
        "--timeout", dest="http_timeout", type=float,
        help="per-request HTTP timeout in seconds (default: 10, env: HANDLER_HTTP_TIMEOUT)"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


# =====================================================================
# MAIN ENTRY POINT
# =====================================================================

def main(argv: Optional[List[str]] = None, stdin: Optional[TextIO] = None) -> int:
    """
    Handler entry point.

    Returns:
        Process exit code: 0 on success or no-op, 1 on any error
    """
    args = get_args(argv)
    setup_json_logging(service_name=PLUGIN_NAME, version=__version__)

    start_time = time.time()
    outcome = OUTCOME_FAILED
    try:
        config = build_config(args)
        event = read_event(stdin or sys.stdin)
        CorrelationID.set(event.id)
        # Annotations may carry the API key, Vault is only a fallback
        apply_annotation_overrides(config, event)
        populate_secrets(config)

        result = handle_event(config, event, apply_overrides=False)
        outcome = result.outcome
        return 0

    except HandlerError as e:
        logger.debug("Handler failed", extra={"error_details": e.to_dict()})
        print(f"error executing handler: {e.message}", file=sys.stderr)
        return 1

    finally:
        METRIC_EVENTS_TOTAL.labels(outcome=outcome).inc()
        METRIC_HANDLER_DURATION.observe(time.time() - start_time)
        push_metrics()


if __name__ == "__main__":
    sys.exit(main())
