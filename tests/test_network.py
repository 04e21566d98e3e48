from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from eth_account import Account

from errors import ConfigurationError
from network import (
    Funder,
    NetworkContext,
    load_funder_account,
    resolve_funder,
    resolve_network_url,
)

from conftest import FakeNetwork

HARDHAT_MNEMONIC = "test test test test test test test test test test test junk"
HARDHAT_ACCOUNT_0 = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
HARDHAT_KEY_0 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def test_url_passes_through() -> None:
    assert resolve_network_url("http://localhost:8545") == "http://localhost:8545"


def test_network_name_uses_infura() -> None:
    assert resolve_network_url("sepolia", "abc") == "https://sepolia.infura.io/v3/abc"


def test_network_name_without_infura_id() -> None:
    with pytest.raises(ConfigurationError, match="INFURA_ID"):
        resolve_network_url("sepolia")


def test_load_private_key_file(tmp_path) -> None:
    path = tmp_path / "key"
    path.write_text(HARDHAT_KEY_0 + "\n")
    assert load_funder_account(str(path)).address == HARDHAT_ACCOUNT_0


def test_load_mnemonic_file(tmp_path) -> None:
    path = tmp_path / "mnemonic"
    path.write_text(HARDHAT_MNEMONIC + "\n")
    assert load_funder_account(str(path)).address == HARDHAT_ACCOUNT_0


def test_unreadable_credentials(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_funder_account(str(tmp_path / "missing"))


def test_invalid_mnemonic(tmp_path) -> None:
    path = tmp_path / "mnemonic"
    path.write_text("not a mnemonic")
    with pytest.raises(ConfigurationError, match="Invalid"):
        load_funder_account(str(path))


def test_funder_from_credentials_file(tmp_path) -> None:
    path = tmp_path / "key"
    path.write_text(HARDHAT_KEY_0)
    funder, deploy_allowed = resolve_funder(FakeNetwork(chain_id=31337), str(path))

    assert funder.address == HARDHAT_ACCOUNT_0
    assert funder.account is not None
    assert deploy_allowed is False


def test_node_account_on_dev_chain_may_deploy() -> None:
    funder, deploy_allowed = resolve_funder(FakeNetwork(chain_id=31337, accounts=[HARDHAT_ACCOUNT_0]), None)
    assert funder == Funder(address=HARDHAT_ACCOUNT_0)
    assert deploy_allowed is True


def test_node_account_on_public_chain_may_not_deploy() -> None:
    _, deploy_allowed = resolve_funder(FakeNetwork(chain_id=11155111, accounts=[HARDHAT_ACCOUNT_0]), None)
    assert deploy_allowed is False


def test_no_accounts_is_fatal() -> None:
    with pytest.raises(ConfigurationError, match="--mnemonic"):
        resolve_funder(FakeNetwork(accounts=[]), None)


def test_account_listing_failure_is_fatal() -> None:
    network = FakeNetwork()
    network.list_accounts = MagicMock(side_effect=ValueError("method not supported"))
    with pytest.raises(ConfigurationError, match="must specify --mnemonic"):
        resolve_funder(network, None)


def _web3_mock():
    web3 = MagicMock()
    web3.eth.chain_id = 31337
    web3.eth.gas_price = 10**9
    web3.eth.get_transaction_count.return_value = 0
    web3.eth.estimate_gas.return_value = 21000
    web3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 9}
    return web3


def test_local_funder_signs_and_waits_for_receipt() -> None:
    web3 = _web3_mock()
    web3.eth.send_raw_transaction.return_value = b"\x01" * 32
    network = NetworkContext(web3)
    funder = Funder.from_account(Account.from_key(HARDHAT_KEY_0))

    receipt = network.send_transaction(funder, {"to": "0x" + "22" * 20, "value": 5})

    assert receipt["status"] == 1
    web3.eth.send_raw_transaction.assert_called_once()
    web3.eth.send_transaction.assert_not_called()
    web3.eth.wait_for_transaction_receipt.assert_called_once_with(b"\x01" * 32)


def test_node_funder_delegates_signing() -> None:
    web3 = _web3_mock()
    web3.eth.send_transaction.return_value = b"\x02" * 32
    network = NetworkContext(web3)

    network.send_transaction(Funder(address=HARDHAT_ACCOUNT_0), {"to": "0x" + "22" * 20, "value": 5})

    tx = web3.eth.send_transaction.call_args[0][0]
    assert tx["from"] == HARDHAT_ACCOUNT_0
    web3.eth.send_raw_transaction.assert_not_called()


def test_is_deployed_checks_code() -> None:
    web3 = _web3_mock()
    web3.eth.get_code.return_value = b""
    assert NetworkContext(web3).is_deployed("0x" + "22" * 20) is False
    web3.eth.get_code.return_value = b"\x60\x80"
    assert NetworkContext(web3).is_deployed("0x" + "22" * 20) is True
