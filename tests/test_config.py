import json
from pathlib import Path

import pytest

from chain_exporter.config import Endpoint, load_exporter_config, resolve_config_path
from chain_exporter.exceptions import ConfigError, ValidationError
from chain_exporter.settings import get_settings

TREASURY = "0x00000000000000000000000000000000000000A1"
TOKEN = "0x00000000000000000000000000000000000000c3"


def write_config(path: Path, content: str) -> Path:
    config_path = path.joinpath("config.toml")
    config_path.write_text(content, encoding="utf-8")
    return config_path


def test_load_exporter_config_success(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path,
        f"""
        [chain]
        name = "eth-goerli"
        rpc_url = "https://rpc.example"
        scrape_interval = "15s"

        [balances]
        treasury = "{TREASURY}"

        [erc20_balances.USDT]
        contract_address = "{TOKEN}"
        decimals = 6
        [erc20_balances.USDT.accounts]
        treasury = "{TREASURY}"

        [contract_calls.oracle_price]
        contract_name = "PriceOracle"
        contract_address = "{TOKEN}"
        scrape_interval = "30s"
        abi_definition = '[{{"type":"function","name":"latestAnswer","inputs":[],"outputs":[{{"name":"","type":"int256"}}]}}]'
        output_decimals = 8
        args = []

        [consistency]
        standard_rpc_endpoint = "https://canonical.example"
        backward_offset = 2
        [consistency.replica_rpc_endpoints]
        ankr = "https://ankr.example"
        infura = "https://infura.example"
        """,
    )

    config = load_exporter_config(config_file)

    assert config.chain.name == "eth-goerli"
    assert config.chain.endpoint == Endpoint(name="eth-goerli", url="https://rpc.example")
    assert [(account.name, account.address) for account in config.accounts] == [
        ("treasury", TREASURY.lower()),
    ]

    token = config.tokens[0]
    assert token.symbol == "USDT"
    assert token.decimals == 6
    assert [account.name for account in token.accounts] == ["treasury"]

    call = config.contract_calls[0]
    assert call.name == "oracle_price"
    assert call.contract_name == "PriceOracle"
    assert call.scrape_interval == "30s"
    assert call.output_decimals == 8
    assert call.args == []
    assert json.loads(call.abi_definition)[0]["name"] == "latestAnswer"

    assert config.consistency.enabled is True
    assert config.consistency.backward_offset == 2
    assert [replica.name for replica in config.consistency.replica_rpc_endpoints] == ["ankr", "infura"]


def test_optional_sections_default_to_empty(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path,
        """
        [chain]
        name = "testnet"
        rpc_url = "https://rpc.example"
        """,
    )

    config = load_exporter_config(config_file)

    assert config.chain.scrape_interval is None
    assert config.accounts == []
    assert config.tokens == []
    assert config.contract_calls == []
    assert config.consistency.enabled is False
    assert config.consistency.backward_offset == 0


def test_missing_chain_table_is_rejected(tmp_path: Path) -> None:
    config_file = write_config(tmp_path, '[balances]\ntreasury = "0x00000000000000000000000000000000000000a1"\n')

    with pytest.raises(ConfigError) as exc_info:
        load_exporter_config(config_file)

    assert exc_info.value.config_section == "chain"


def test_missing_file_raises_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_exporter_config(tmp_path.joinpath("absent.toml"))


def test_malformed_toml_raises_config_error(tmp_path: Path) -> None:
    config_file = write_config(tmp_path, "[chain\nname = \"eth-goerli\"\n")

    with pytest.raises(ConfigError) as exc_info:
        load_exporter_config(config_file)

    assert exc_info.value.config_file == str(config_file)
    assert str(exc_info.value).startswith("Invalid TOML:")


def test_token_decimals_default_to_eighteen(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path,
        f"""
        [chain]
        name = "testnet"
        rpc_url = "https://rpc.example"

        [erc20_balances.DAI]
        contract_address = "{TOKEN}"
        """,
    )

    token = load_exporter_config(config_file).tokens[0]

    assert token.decimals == 18
    assert token.accounts == []


def test_contract_name_defaults_to_call_name(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path,
        f"""
        [chain]
        name = "testnet"
        rpc_url = "https://rpc.example"

        [contract_calls.supply]
        contract_address = "{TOKEN}"
        abi_definition = [{{ type = "function", name = "totalSupply", inputs = [], outputs = [{{ name = "", type = "uint256" }}] }}]
        args = ["0x00000000000000000000000000000000000000a1", 8, true]
        """,
    )

    call = load_exporter_config(config_file).contract_calls[0]

    assert call.contract_name == "supply"
    assert call.output_decimals == 0
    assert json.loads(call.abi_definition)[0]["name"] == "totalSupply"
    assert call.args == ["0x00000000000000000000000000000000000000a1", "8", "true"]


@pytest.mark.parametrize(
    ("snippet", "section"),
    [
        ('[balances]\ntreasury = "0x1234"\n', "balances.treasury"),
        ('[erc20_balances.USDT]\ncontract_address = "not-an-address"\n', "erc20_balances.USDT.contract_address"),
        (
            f'[erc20_balances.USDT]\ncontract_address = "{TOKEN}"\ndecimals = -1\n',
            "erc20_balances.USDT.decimals",
        ),
        ('[consistency]\nbackward_offset = "two"\n', "consistency.backward_offset"),
        ("[consistency]\nreplica_rpc_endpoints = []\n", "consistency.replica_rpc_endpoints"),
    ],
)
def test_invalid_entries_report_location(tmp_path: Path, snippet: str, section: str) -> None:
    config_file = write_config(
        tmp_path,
        '[chain]\nname = "testnet"\nrpc_url = "https://rpc.example"\n\n' + snippet,
    )

    with pytest.raises(ValidationError) as exc_info:
        load_exporter_config(config_file)

    assert exc_info.value.config_section == section


@pytest.mark.parametrize("interval", ["0s", "fast", "5d"])
def test_invalid_scrape_interval_rejected(tmp_path: Path, interval: str) -> None:
    config_file = write_config(
        tmp_path,
        f"""
        [chain]
        name = "testnet"
        rpc_url = "https://rpc.example"
        scrape_interval = "{interval}"
        """,
    )

    with pytest.raises(ValidationError) as exc_info:
        load_exporter_config(config_file)

    assert exc_info.value.config_section == "chain.scrape_interval"


def test_contract_call_args_must_be_array(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path,
        f"""
        [chain]
        name = "testnet"
        rpc_url = "https://rpc.example"

        [contract_calls.oracle]
        contract_address = "{TOKEN}"
        abi_definition = "[]"
        args = "0x01"
        """,
    )

    with pytest.raises(ValidationError) as exc_info:
        load_exporter_config(config_file)

    assert exc_info.value.config_section == "contract_calls.oracle.args"


def test_rpc_url_expands_environment_variables(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RPC_TOKEN", "secret-token")

    config_file = write_config(
        tmp_path,
        """
        [chain]
        name = "testnet"
        rpc_url = "https://rpc.example/${RPC_TOKEN}"
        """,
    )

    config = load_exporter_config(config_file)

    assert config.chain.rpc_url == "https://rpc.example/secret-token"


def test_resolve_config_path_accepts_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHAIN_EXPORTER_CONFIG_PATH", str(tmp_path))
    get_settings.cache_clear()

    try:
        assert resolve_config_path() == tmp_path.resolve().joinpath("config.toml")
    finally:
        get_settings.cache_clear()
