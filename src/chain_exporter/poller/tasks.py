"""Collector task definitions and their construction from the exporter config."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable

from ..collectors import (
    account_target,
    collect_account_balance,
    collect_contract_call,
    collect_token_balance,
    prepare_contract_call,
    prepare_token_balance,
)
from ..config import (
    AccountConfig,
    ChainConfig,
    ConsistencyConfig,
    ContractCallConfig,
    Endpoint,
    ExporterConfig,
    TokenConfig,
)
from ..consistency import ReplicaClient, run_consistency_check
from ..context import ApplicationContext
from ..exceptions import ConfigError
from ..logging import build_log_extra, get_logger
from ..metrics import (
    ACCOUNT_BALANCE_METRIC,
    ACCOUNT_NONCE_METRIC,
    BLOCK_HASH_FINGERPRINT_METRIC,
    CONTRACT_DATA_METRIC,
    STATE_ROOT_FINGERPRINT_METRIC,
    TOKEN_BALANCE_METRIC,
    claim_series,
    mark_task_broken,
    set_configured_tasks,
)
from ..models import (
    KIND_ACCOUNT,
    KIND_CONSISTENCY,
    KIND_CONTRACT_CALL,
    KIND_TOKEN_BALANCE,
    ReplicaTarget,
)
from .intervals import determine_interval_seconds

LOGGER = get_logger(__name__)

CANONICAL_ENDPOINT_NAME = "standard"


@dataclass(slots=True)
class CollectorTask:
    """One independently scheduled collector.

    `tick` performs a single blocking sample; the control loop runs it in a
    worker thread every `interval_seconds`.
    """

    name: str
    kind: str
    interval_seconds: int
    tick: Callable[[], Any]
    log_context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(f"Interval for task {self.name} must be positive.")


def build_account_task(
    chain: ChainConfig,
    account: AccountConfig,
    context: ApplicationContext,
    interval_seconds: int,
) -> CollectorTask:
    target = account_target(chain, account)
    labels = target.as_labels()

    claim_series(ACCOUNT_BALANCE_METRIC, labels, target.task_name)
    claim_series(ACCOUNT_NONCE_METRIC, labels, target.task_name)

    rpc = context.create_rpc_client(chain.endpoint)

    return CollectorTask(
        name=target.task_name,
        kind=target.kind,
        interval_seconds=interval_seconds,
        tick=functools.partial(collect_account_balance, target, rpc, context.metrics),
        log_context=build_log_extra(
            chain=chain,
            account_name=target.name,
            account_address=target.address,
        ),
    )


def build_token_balance_task(
    chain: ChainConfig,
    token: TokenConfig,
    account: AccountConfig,
    context: ApplicationContext,
    interval_seconds: int,
) -> CollectorTask:
    target, call = prepare_token_balance(chain, token, account)

    claim_series(TOKEN_BALANCE_METRIC, target.as_labels(), target.task_name)

    rpc = context.create_rpc_client(chain.endpoint)

    return CollectorTask(
        name=target.task_name,
        kind=target.kind,
        interval_seconds=interval_seconds,
        tick=functools.partial(collect_token_balance, target, call, rpc, context.metrics),
        log_context=build_log_extra(
            chain=chain,
            account_name=target.account_name,
            account_address=target.account_address,
            contract_address=target.contract_address,
            additional={"symbol": target.symbol},
        ),
    )


def build_contract_call_task(
    chain: ChainConfig,
    call_config: ContractCallConfig,
    context: ApplicationContext,
    interval_seconds: int,
) -> CollectorTask:
    target, call = prepare_contract_call(chain, call_config)

    claim_series(CONTRACT_DATA_METRIC, target.as_labels(), target.task_name)

    rpc = context.create_rpc_client(chain.endpoint)

    return CollectorTask(
        name=target.task_name,
        kind=target.kind,
        interval_seconds=interval_seconds,
        tick=functools.partial(collect_contract_call, target, call, rpc, context.metrics),
        log_context=build_log_extra(
            chain=chain,
            contract_address=target.contract_address,
            additional={"contract_name": target.contract_name, "method": call.signature},
        ),
    )


def build_consistency_task(
    chain: ChainConfig,
    consistency: ConsistencyConfig,
    context: ApplicationContext,
    interval_seconds: int,
) -> CollectorTask:
    canonical = context.create_rpc_client(
        Endpoint(name=CANONICAL_ENDPOINT_NAME, url=consistency.standard_rpc_endpoint or "")
    )

    replicas: list[ReplicaClient] = []

    for endpoint in consistency.replica_rpc_endpoints:
        target = ReplicaTarget(chain_name=chain.name, name=endpoint.name, url=endpoint.url)

        claim_series(BLOCK_HASH_FINGERPRINT_METRIC, target.as_labels(), KIND_CONSISTENCY)
        claim_series(STATE_ROOT_FINGERPRINT_METRIC, target.as_labels(), KIND_CONSISTENCY)

        replicas.append(ReplicaClient(target=target, rpc=context.create_rpc_client(endpoint)))

    return CollectorTask(
        name=KIND_CONSISTENCY,
        kind=KIND_CONSISTENCY,
        interval_seconds=interval_seconds,
        tick=functools.partial(
            run_consistency_check,
            canonical,
            replicas,
            consistency.backward_offset,
            context.metrics,
        ),
        log_context=build_log_extra(
            chain=chain,
            additional={
                "replicas": [replica.target.name for replica in replicas],
                "backward_offset": consistency.backward_offset,
            },
        ),
    )


def build_collector_tasks(
    config: ExporterConfig,
    context: ApplicationContext,
    *,
    strict: bool | None = None,
) -> list[CollectorTask]:
    """Build one collector task per configured target, plus the consistency checker.

    With `strict` (the default from settings), the first construction failure
    propagates and the exporter does not start. Otherwise the failing task is
    logged, reported as broken via `chain_exporter_collector_up`, and skipped.

    Raises:
        ConfigError: In strict mode, if any task cannot be constructed.
    """
    strict_mode = context.settings.poller.strict_task_construction if strict is None else strict

    chain = config.chain
    chain_interval = determine_interval_seconds(chain.scrape_interval, owner=chain.name)

    builders: list[tuple[str, str, Callable[[], CollectorTask]]] = []

    for account in config.accounts:
        builders.append(
            (
                f"{KIND_ACCOUNT}:{account.name}",
                KIND_ACCOUNT,
                functools.partial(build_account_task, chain, account, context, chain_interval),
            )
        )

    for token in config.tokens:
        for account in token.accounts:
            builders.append(
                (
                    f"{KIND_TOKEN_BALANCE}:{token.symbol}:{account.name}",
                    KIND_TOKEN_BALANCE,
                    functools.partial(
                        build_token_balance_task, chain, token, account, context, chain_interval
                    ),
                )
            )

    for call_config in config.contract_calls:
        call_interval = determine_interval_seconds(
            call_config.scrape_interval,
            chain.scrape_interval,
            owner=call_config.name,
        )
        builders.append(
            (
                f"{KIND_CONTRACT_CALL}:{call_config.name}",
                KIND_CONTRACT_CALL,
                functools.partial(build_contract_call_task, chain, call_config, context, call_interval),
            )
        )

    if config.consistency.enabled:
        builders.append(
            (
                KIND_CONSISTENCY,
                KIND_CONSISTENCY,
                functools.partial(
                    build_consistency_task, chain, config.consistency, context, chain_interval
                ),
            )
        )

    tasks: list[CollectorTask] = []
    broken: list[tuple[str, str, str]] = []

    for name, kind, builder in builders:
        try:
            tasks.append(builder())
        except ConfigError as exc:
            if strict_mode:
                raise

            LOGGER.error(
                "Collector %s could not be constructed and will not run: %s",
                name,
                exc,
                extra=build_log_extra(chain=chain, task=name, kind=kind, additional=exc.context),
            )
            broken.append((name, kind, str(exc)))

    set_configured_tasks((task.name, task.kind) for task in tasks)

    for name, kind, reason in broken:
        mark_task_broken(name, kind, reason)

    LOGGER.info(
        "Built %d collector task(s) for %s (%d broken).",
        len(tasks),
        chain.name,
        len(broken),
        extra=build_log_extra(chain=chain),
    )

    return tasks


__all__ = [
    "CANONICAL_ENDPOINT_NAME",
    "CollectorTask",
    "build_account_task",
    "build_collector_tasks",
    "build_consistency_task",
    "build_contract_call_task",
    "build_token_balance_task",
]
