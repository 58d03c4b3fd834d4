from __future__ import annotations

import logging

import pytest
from conftest import FakeRpcClient

from chain_exporter.consistency import (
    ReplicaClient,
    comparison_height,
    run_consistency_check,
)
from chain_exporter.exceptions import RpcConnectionError
from chain_exporter.metrics import get_metrics
from chain_exporter.models import ReplicaTarget
from chain_exporter.rpc import BlockSummary

HASH_A = "0x" + "1" * 63 + "a"
ROOT_3 = "0x" + "2" * 63 + "3"


def _replica(name: str, rpc: FakeRpcClient) -> ReplicaClient:
    return ReplicaClient(
        target=ReplicaTarget(chain_name="testnet", name=name, url=f"https://{name}.example"),
        rpc=rpc,
    )


def _block(number: int, block_hash: str = HASH_A, state_root: str = ROOT_3) -> BlockSummary:
    return BlockSummary(number=number, hash=block_hash, state_root=state_root)


def _fingerprints(name: str) -> tuple[float | None, float | None]:
    labels = {"chain_name": "testnet", "replica": name, "rpc_url": f"https://{name}.example"}
    registry = get_metrics().registry

    return (
        registry.get_sample_value("chain_blockhash_eigenvalue", labels),
        registry.get_sample_value("chain_stateroot_eigenvalue", labels),
    )


@pytest.mark.parametrize(
    ("canonical", "offset", "expected"),
    [(100, 0, 100), (100, 5, 95), (3, 5, 0), (0, 0, 0)],
)
def test_comparison_height(canonical: int, offset: int, expected: int) -> None:
    assert comparison_height(canonical, offset) == expected


def test_all_replicas_fingerprinted_at_offset_height() -> None:
    canonical = FakeRpcClient(get_block_number=12347)
    alpha = FakeRpcClient(name="alpha", get_block=lambda number: _block(number))
    beta = FakeRpcClient(name="beta", get_block=lambda number: _block(number, state_root="0x" + "0" * 64))

    result = run_consistency_check(
        canonical,
        [_replica("alpha", alpha), _replica("beta", beta)],
        2,
        get_metrics(),
    )

    assert result.compared_height == 12345
    assert result.updated == ["alpha", "beta"]
    assert alpha.calls == [("get_block", (12345,))]
    assert _fingerprints("alpha") == (45 + 10, 45 + 3)
    assert _fingerprints("beta") == (45 + 10, 45 + 0)


def test_failing_replica_only_skips_itself(caplog: pytest.LogCaptureFixture) -> None:
    canonical = FakeRpcClient(get_block_number=12345)
    healthy = FakeRpcClient(name="healthy", get_block=lambda number: _block(number))
    broken = FakeRpcClient(name="broken", get_block=RpcConnectionError("refused"))

    caplog.set_level(logging.WARNING)

    result = run_consistency_check(
        canonical,
        [_replica("broken", broken), _replica("healthy", healthy)],
        0,
        get_metrics(),
    )

    assert result.failed == ["broken"]
    assert result.updated == ["healthy"]
    assert _fingerprints("broken") == (None, None)
    assert _fingerprints("healthy") == (55, 48)
    assert any("replica broken failed" in message for message in caplog.messages)


def test_replica_answering_other_height_is_not_written() -> None:
    canonical = FakeRpcClient(get_block_number=200)
    lagging = FakeRpcClient(name="lagging", get_block=lambda number: _block(number - 1))

    result = run_consistency_check(canonical, [_replica("lagging", lagging)], 0, get_metrics())

    assert result.failed == ["lagging"]
    assert _fingerprints("lagging") == (None, None)


def test_canonical_failure_aborts_tick() -> None:
    canonical = FakeRpcClient(get_block_number=RpcConnectionError("down"))
    replica = FakeRpcClient(name="alpha", get_block=lambda number: _block(number))

    with pytest.raises(RpcConnectionError):
        run_consistency_check(canonical, [_replica("alpha", replica)], 0, get_metrics())

    assert replica.calls == []
    assert _fingerprints("alpha") == (None, None)


def test_previous_fingerprint_survives_replica_failure() -> None:
    canonical = FakeRpcClient(get_block_number=12345)
    replica = FakeRpcClient(name="alpha", get_block=lambda number: _block(number))

    run_consistency_check(canonical, [_replica("alpha", replica)], 0, get_metrics())

    replica.responses["get_block"] = RpcConnectionError("refused")
    canonical.responses["get_block_number"] = 12399

    run_consistency_check(canonical, [_replica("alpha", replica)], 0, get_metrics())

    assert _fingerprints("alpha") == (55, 48)
