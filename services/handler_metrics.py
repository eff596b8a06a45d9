#!/usr/bin/env python3
"""
Sensu Puppet Handler - Prometheus Metrics

The handler is a short-lived process, so metrics live in a dedicated
registry and are pushed to a Prometheus Pushgateway at exit when
PROMETHEUS_PUSHGATEWAY is set. Push failures are logged and ignored.
"""

import logging
import os
from typing import Mapping, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway

logger = logging.getLogger(__name__)

PUSHGATEWAY_JOB = 'sensu_puppet_handler'

REGISTRY = CollectorRegistry()

# =====================================================================
# PROMETHEUS METRICS
# =====================================================================

METRIC_EVENTS_TOTAL = Counter(
    'sensu_puppet_handler_events_total',
    'Events handled, by terminal outcome',
    ['outcome'],  # skipped, node_exists, deleted, already_absent, failed
    registry=REGISTRY
)

METRIC_PUPPETDB_LOOKUPS_TOTAL = Counter(
    'sensu_puppet_handler_puppetdb_lookups_total',
    'PuppetDB node lookups, by result',
    ['result'],  # exists, not_exists, error
    registry=REGISTRY
)

METRIC_SENSU_DELETIONS_TOTAL = Counter(
    'sensu_puppet_handler_sensu_deletions_total',
    'Sensu entity deletions, by result',
    ['result'],  # deleted, already_absent, error
    registry=REGISTRY
)

METRIC_HANDLER_DURATION = Histogram(
    'sensu_puppet_handler_duration_seconds',
    'Time spent handling one event',
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY
)


def push_metrics(environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Push the registry to the configured Pushgateway.

    Returns:
        True if metrics were pushed
    """
    env = os.environ if environ is None else environ
    gateway = env.get('PROMETHEUS_PUSHGATEWAY')
    if not gateway:
        return False

    try:
        push_to_gateway(gateway, job=PUSHGATEWAY_JOB, registry=REGISTRY)
        logger.debug(f"Metrics pushed to {gateway}")
        return True
    except Exception as e:
        logger.warning(f"Failed to push metrics to {gateway}: {e}")
        return False
