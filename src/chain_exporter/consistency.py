"""Cross-replica consistency checking via block hash and state root fingerprints."""

from __future__ import annotations

from dataclasses import dataclass, field

from .decoder import fingerprint
from .exceptions import DecodeError, RpcError
from .logging import build_log_extra, get_logger
from .metrics import MetricsStoreProtocol
from .models import KIND_CONSISTENCY, ReplicaTarget
from .rpc import RpcClientProtocol

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class ReplicaClient:
    target: ReplicaTarget
    rpc: RpcClientProtocol


@dataclass(slots=True)
class ConsistencyResult:
    """Outcome of one consistency tick."""

    canonical_height: int
    compared_height: int
    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def comparison_height(canonical_height: int, backward_offset: int) -> int:
    """Return the height every replica is compared at, never below genesis."""

    return max(canonical_height - backward_offset, 0)


def check_replica(
    replica: ReplicaClient,
    height: int,
    metrics: MetricsStoreProtocol,
) -> None:
    """Fingerprint one replica's block at `height` and write both series.

    Raises:
        RpcError: If the replica cannot be queried.
        DecodeError: If the replica answers with a different block or a
            malformed hash.
    """
    block = replica.rpc.get_block(height)

    if block.number != height:
        raise DecodeError(
            f"Replica {replica.target.name} returned block {block.number} for requested height {height}.",
            context={"replica": replica.target.name, "requested": height, "returned": block.number},
        )

    block_hash_value = fingerprint(block.hash, block.number)
    state_root_value = fingerprint(block.state_root, block.number)

    labels = replica.target.as_labels()

    metrics.consistency.block_hash_fingerprint.labels(*labels).set(block_hash_value)
    metrics.consistency.state_root_fingerprint.labels(*labels).set(state_root_value)


def run_consistency_check(
    canonical: RpcClientProtocol,
    replicas: list[ReplicaClient],
    backward_offset: int,
    metrics: MetricsStoreProtocol,
) -> ConsistencyResult:
    """Compare every replica against the canonical height for one tick.

    A canonical failure propagates and nothing is written. A replica failure is
    logged and only skips that replica.
    """
    canonical_height = canonical.get_block_number()
    height = comparison_height(canonical_height, backward_offset)

    result = ConsistencyResult(canonical_height=canonical_height, compared_height=height)

    for replica in replicas:
        try:
            check_replica(replica, height, metrics)
        except (RpcError, DecodeError) as exc:
            LOGGER.warning(
                "Consistency check against replica %s failed at block %s: %s",
                replica.target.name,
                height,
                exc,
                extra=build_log_extra(
                    task=KIND_CONSISTENCY,
                    additional={"replica": replica.target.name, "block_number": height},
                ),
            )
            result.failed.append(replica.target.name)
            continue

        result.updated.append(replica.target.name)

    LOGGER.debug(
        "Consistency check at block %s updated %d replica(s), %d failed.",
        height,
        len(result.updated),
        len(result.failed),
        extra=build_log_extra(
            task=KIND_CONSISTENCY,
            additional={"canonical_height": canonical_height, "block_number": height},
        ),
    )

    return result


__all__ = [
    "ConsistencyResult",
    "ReplicaClient",
    "check_replica",
    "comparison_height",
    "run_consistency_check",
]
