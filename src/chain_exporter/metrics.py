"""Prometheus metric registry and helpers for chain exporter state."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Protocol, runtime_checkable

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from .exceptions import ConfigError

ACCOUNT_LABELS = ("chain_name", "rpc_url", "account_name", "account_address")
TOKEN_LABELS = ("chain_name", "rpc_url", "symbol", "account_name", "account_address")
CONTRACT_LABELS = ("chain_name", "rpc_url", "contract_name", "contract_address", "method", "args")
REPLICA_LABELS = ("chain_name", "replica", "rpc_url")
TASK_LABELS = ("task", "kind")

ACCOUNT_BALANCE_METRIC = "chain_accountbalance"
ACCOUNT_NONCE_METRIC = "chain_account_nounce"
TOKEN_BALANCE_METRIC = "chain_erc20balance"
CONTRACT_DATA_METRIC = "chain_contractdata"
BLOCK_HASH_FINGERPRINT_METRIC = "chain_blockhash_eigenvalue"
STATE_ROOT_FINGERPRINT_METRIC = "chain_stateroot_eigenvalue"

RPC_DURATION_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


@dataclass(slots=True)
class ExporterMetrics:
    up: Gauge
    configured_tasks: Gauge
    active_tasks: Gauge
    collector_up: Gauge
    collector_last_success: Gauge
    rpc_errors: Counter
    rpc_call_duration: Histogram


@dataclass(slots=True)
class AccountMetrics:
    balance: Gauge
    nonce: Gauge
    token_balance: Gauge


@dataclass(slots=True)
class ContractMetrics:
    call_result: Gauge


@dataclass(slots=True)
class ConsistencyMetrics:
    block_hash_fingerprint: Gauge
    state_root_fingerprint: Gauge


@runtime_checkable
class MetricsStoreProtocol(Protocol):
    registry: CollectorRegistry
    exporter: ExporterMetrics
    account: AccountMetrics
    contract: ContractMetrics
    consistency: ConsistencyMetrics


@dataclass(slots=True)
class MetricsBundle(MetricsStoreProtocol):
    registry: CollectorRegistry
    exporter: ExporterMetrics
    account: AccountMetrics
    contract: ContractMetrics
    consistency: ConsistencyMetrics


def create_metrics(registry: CollectorRegistry | None = None) -> MetricsBundle:
    registry = registry or CollectorRegistry()

    exporter = ExporterMetrics(
        up=Gauge(
            "chain_exporter_up",
            "Indicates whether the exporter is available (1 for up, 0 for down).",
            registry=registry,
        ),
        configured_tasks=Gauge(
            "chain_exporter_configured_tasks",
            "Number of collector tasks built from the configuration.",
            registry=registry,
        ),
        active_tasks=Gauge(
            "chain_exporter_active_tasks",
            "Number of collector tasks currently running.",
            registry=registry,
        ),
        collector_up=Gauge(
            "chain_exporter_collector_up",
            "Whether the collector's most recent tick succeeded (1) or failed (0).",
            labelnames=TASK_LABELS,
            registry=registry,
        ),
        collector_last_success=Gauge(
            "chain_exporter_collector_last_success_timestamp_seconds",
            "Unix timestamp of the collector's most recent successful tick.",
            labelnames=TASK_LABELS,
            registry=registry,
        ),
        rpc_errors=Counter(
            "chain_exporter_rpc_errors",
            "Number of failed RPC calls by endpoint, operation and error type.",
            labelnames=("endpoint", "operation", "error_type"),
            registry=registry,
        ),
        rpc_call_duration=Histogram(
            "chain_exporter_rpc_call_duration_seconds",
            "Duration of successful RPC calls.",
            labelnames=("endpoint", "operation"),
            buckets=RPC_DURATION_BUCKETS,
            registry=registry,
        ),
    )

    account = AccountMetrics(
        balance=Gauge(
            ACCOUNT_BALANCE_METRIC,
            "Native account balance expressed in Ether.",
            labelnames=ACCOUNT_LABELS,
            registry=registry,
        ),
        nonce=Gauge(
            ACCOUNT_NONCE_METRIC,
            "Account nonce (transaction count) at the latest block.",
            labelnames=ACCOUNT_LABELS,
            registry=registry,
        ),
        token_balance=Gauge(
            TOKEN_BALANCE_METRIC,
            "ERC-20 token balance scaled by the token's decimals.",
            labelnames=TOKEN_LABELS,
            registry=registry,
        ),
    )

    contract = ContractMetrics(
        call_result=Gauge(
            CONTRACT_DATA_METRIC,
            "Result of a configured read-only contract call scaled by its output decimals.",
            labelnames=CONTRACT_LABELS,
            registry=registry,
        ),
    )

    consistency = ConsistencyMetrics(
        block_hash_fingerprint=Gauge(
            BLOCK_HASH_FINGERPRINT_METRIC,
            "Block hash fingerprint reported by a replica for the compared block height.",
            labelnames=REPLICA_LABELS,
            registry=registry,
        ),
        state_root_fingerprint=Gauge(
            STATE_ROOT_FINGERPRINT_METRIC,
            "State root fingerprint reported by a replica for the compared block height.",
            labelnames=REPLICA_LABELS,
            registry=registry,
        ),
    )

    return MetricsBundle(
        registry=registry,
        exporter=exporter,
        account=account,
        contract=contract,
        consistency=consistency,
    )


_METRICS: MetricsStoreProtocol = create_metrics()


def get_metrics() -> MetricsStoreProtocol:
    return _METRICS


def set_metrics(bundle: MetricsStoreProtocol) -> None:
    global _METRICS
    _METRICS = bundle


def reset_metrics_state(registry: CollectorRegistry | None = None) -> MetricsStoreProtocol:
    """Rebuild the metrics bundle and clear all cached task and series state."""

    bundle = create_metrics(registry)
    set_metrics(bundle)

    CONFIGURED_TASKS.clear()
    TASK_HEALTH_STATUS.clear()
    TASK_LAST_SUCCESS.clear()
    BROKEN_TASKS.clear()

    with _SERIES_LOCK:
        SERIES_OWNERS.clear()

    return bundle


CONFIGURED_TASKS: dict[str, str] = {}

TASK_HEALTH_STATUS: dict[str, bool] = {}

TASK_LAST_SUCCESS: Dict[str, float] = {}

BROKEN_TASKS: dict[str, str] = {}

SERIES_OWNERS: dict[tuple[str, tuple[str, ...]], str] = {}

_SERIES_LOCK = threading.Lock()


def claim_series(metric_name: str, labels: tuple[str, ...], owner: str) -> None:
    """Register `owner` as the only writer of a metric series.

    Claiming the same series twice for the same owner is a no-op.

    Raises:
        ConfigError: If another task already owns the series.
    """

    key = (metric_name, tuple(labels))

    with _SERIES_LOCK:
        current = SERIES_OWNERS.get(key)

        if current is not None and current != owner:
            raise ConfigError(
                f"Series {metric_name}{list(labels)} is already written by task '{current}'.",
                config_key=owner,
                context={"metric": metric_name, "owner": current},
            )

        SERIES_OWNERS[key] = owner


def series_owner(metric_name: str, labels: tuple[str, ...]) -> str | None:
    with _SERIES_LOCK:
        return SERIES_OWNERS.get((metric_name, tuple(labels)))


def set_configured_tasks(tasks: Iterable[tuple[str, str]]) -> None:
    """Record the (task name, kind) pairs the exporter was configured with."""

    CONFIGURED_TASKS.clear()

    for name, kind in tasks:
        CONFIGURED_TASKS[name] = kind

    get_metrics().exporter.configured_tasks.set(len(CONFIGURED_TASKS))


def record_task_success(
    task_name: str,
    kind: str,
    *,
    timestamp: float | None = None,
) -> None:
    """Record a successful tick for the given task."""

    metrics = get_metrics()
    now = time.time() if timestamp is None else timestamp

    metrics.exporter.collector_up.labels(task_name, kind).set(1)
    metrics.exporter.collector_last_success.labels(task_name, kind).set(now)
    TASK_HEALTH_STATUS[task_name] = True
    TASK_LAST_SUCCESS[task_name] = now


def record_task_failure(task_name: str, kind: str) -> None:
    """Record a failed tick; previously written samples are left untouched."""

    get_metrics().exporter.collector_up.labels(task_name, kind).set(0)
    TASK_HEALTH_STATUS[task_name] = False


def mark_task_broken(task_name: str, kind: str, reason: str) -> None:
    """Flag a task that could not be constructed and will never run."""

    CONFIGURED_TASKS[task_name] = kind
    BROKEN_TASKS[task_name] = reason
    get_metrics().exporter.configured_tasks.set(len(CONFIGURED_TASKS))
    record_task_failure(task_name, kind)


def record_rpc_call_duration(endpoint: str, operation: str, duration_seconds: float) -> None:
    get_metrics().exporter.rpc_call_duration.labels(endpoint, operation).observe(duration_seconds)


def record_rpc_error(endpoint: str, operation: str, error_type: str) -> None:
    get_metrics().exporter.rpc_errors.labels(endpoint, operation, error_type).inc()


def update_active_task_count(count: int) -> None:
    get_metrics().exporter.active_tasks.set(count)


__all__ = [
    "ACCOUNT_BALANCE_METRIC",
    "ACCOUNT_LABELS",
    "ACCOUNT_NONCE_METRIC",
    "BLOCK_HASH_FINGERPRINT_METRIC",
    "CONTRACT_DATA_METRIC",
    "STATE_ROOT_FINGERPRINT_METRIC",
    "TOKEN_BALANCE_METRIC",
    "AccountMetrics",
    "BROKEN_TASKS",
    "CONFIGURED_TASKS",
    "CONTRACT_LABELS",
    "ConsistencyMetrics",
    "ContractMetrics",
    "ExporterMetrics",
    "MetricsBundle",
    "MetricsStoreProtocol",
    "REPLICA_LABELS",
    "SERIES_OWNERS",
    "TASK_HEALTH_STATUS",
    "TASK_LAST_SUCCESS",
    "TOKEN_LABELS",
    "claim_series",
    "create_metrics",
    "get_metrics",
    "mark_task_broken",
    "record_rpc_call_duration",
    "record_rpc_error",
    "record_task_failure",
    "record_task_success",
    "reset_metrics_state",
    "series_owner",
    "set_configured_tasks",
    "set_metrics",
    "update_active_task_count",
]
