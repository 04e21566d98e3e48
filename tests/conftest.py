"""Pytest fixtures and in-memory fakes of the chain, account API and bundler."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import DETERMINISTIC_DEPLOYER, ENTRYPOINT_V08
from network import Funder

GWEI = 10**9
FUNDER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
# Minimal creation code; only its hash matters for address derivation
FACTORY_BYTECODE = "0x6080604052348015600f57600080fd5b50603f80601d6000396000f3fe"


class FakeNetwork:
    """Stands in for NetworkContext; records every query and transaction."""

    def __init__(self, chain_id=31337, gas_price=GWEI, accounts=None):
        self.chain_id = chain_id
        self.gas_price = gas_price
        self.accounts = [FUNDER_ADDRESS] if accounts is None else accounts
        self.balances = {}
        self.code = {}
        self.sent = []
        self.events = []
        self.receipt_status = 1
        self.on_send = None

    def set_code(self, address, code=b"\x60\x00"):
        self.code[address.lower()] = code

    def get_balance(self, address):
        self.events.append(("get_balance", address))
        return self.balances.get(address.lower(), 0)

    def get_code(self, address):
        return self.code.get(address.lower(), b"")

    def is_deployed(self, address):
        return len(self.get_code(address)) > 0

    def get_gas_price(self):
        return self.gas_price

    def list_accounts(self):
        return list(self.accounts)

    def send_transaction(self, funder, tx):
        self.sent.append((funder, dict(tx)))
        self.events.append(("send_transaction", tx.get("to")))
        value = tx.get("value", 0)
        if value:
            key = tx["to"].lower()
            self.balances[key] = self.balances.get(key, 0) + value
        if self.on_send is not None:
            self.on_send(tx)
        return {
            "status": self.receipt_status,
            "transactionHash": bytes([len(self.sent)]) * 32,
            "blockNumber": len(self.sent),
        }

    def send_raw_transaction(self, raw_tx):
        self.events.append(("send_raw_transaction", raw_tx))
        return {"status": self.receipt_status, "transactionHash": b"\xee" * 32, "blockNumber": 0}


@pytest.fixture
def network() -> FakeNetwork:
    fake = FakeNetwork()
    fake.set_code(DETERMINISTIC_DEPLOYER)
    return fake


@pytest.fixture
def funder() -> Funder:
    return Funder(address=FUNDER_ADDRESS)


@pytest.fixture
def factory_artifact(tmp_path) -> Path:
    path = tmp_path / "SimpleAccountFactory.json"
    path.write_text(json.dumps({
        "contractName": "SimpleAccountFactory",
        "abi": [
            {"type": "constructor", "inputs": [{"name": "_entryPoint", "type": "address"}]},
            {"type": "function", "name": "getAddress", "inputs": [], "outputs": []},
        ],
        "bytecode": FACTORY_BYTECODE,
    }))
    return path


@pytest.fixture
def entry_point() -> str:
    return ENTRYPOINT_V08
