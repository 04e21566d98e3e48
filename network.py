"""
Network handle used for balance, code and gas price queries and for sending
the funding and deployment transactions
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from config import DEV_CHAIN_IDS
from errors import ConfigurationError

logger = logging.getLogger(__name__)

NETWORK_NAME_PATTERN = re.compile(r"^[\w-]+$")
PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def resolve_network_url(network: str, infura_id: Optional[str] = None) -> str:
    """Turn a bare network name into an Infura URL, pass URLs through"""
    if NETWORK_NAME_PATTERN.match(network) is None:
        return network
    if not infura_id:
        raise ConfigurationError(f"Network name '{network}' requires INFURA_ID (or pass a full RPC URL)")
    return f"https://{network}.infura.io/v3/{infura_id}"


@dataclass
class Funder:
    """Identity paying for funding and deployment, distinct from the account owner.

    ``account`` is set for locally held keys; ``None`` means the node signs.
    """
    address: str
    account: Optional[LocalAccount] = None

    @classmethod
    def from_account(cls, account: LocalAccount) -> "Funder":
        return cls(address=account.address, account=account)


def load_funder_account(path: str) -> LocalAccount:
    """Load a mnemonic or private key file"""
    try:
        with open(path, "r", encoding="ascii") as f:
            secret = f.read().strip()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read funding credentials from {path}: {e}") from e

    try:
        if PRIVATE_KEY_PATTERN.match(secret):
            return Account.from_key(secret)
        Account.enable_unaudited_hdwallet_features()
        return Account.from_mnemonic(secret)
    except Exception as e:
        raise ConfigurationError(f"Invalid mnemonic/private key in {path}: {e}") from e


class NetworkContext:
    """Thin wrapper over web3 for the queries the runner needs"""

    def __init__(self, web3: Web3):
        self.web3 = web3
        self._chain_id = None

    @classmethod
    def from_url(cls, url: str) -> "NetworkContext":
        logger.info(f"Connecting to {url}")
        return cls(Web3(Web3.HTTPProvider(url)))

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.web3.eth.chain_id
        return self._chain_id

    def get_balance(self, address: str) -> int:
        return self.web3.eth.get_balance(Web3.to_checksum_address(address))

    def get_code(self, address: str) -> bytes:
        return bytes(self.web3.eth.get_code(Web3.to_checksum_address(address)))

    def is_deployed(self, address: str) -> bool:
        return len(self.get_code(address)) > 0

    def get_gas_price(self) -> int:
        return self.web3.eth.gas_price

    def list_accounts(self) -> List[str]:
        return list(self.web3.eth.accounts)

    def estimate_gas(self, tx: Dict) -> int:
        return self.web3.eth.estimate_gas(tx)

    def block_number(self) -> int:
        return self.web3.eth.block_number

    def get_logs(self, filter_params: Dict) -> List:
        return self.web3.eth.get_logs(filter_params)

    def contract(self, address: str, abi: List[Dict]):
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def send_transaction(self, funder: Funder, tx: Dict):
        """Send a transaction from the funder and block until it is mined"""
        tx = dict(tx)
        tx['from'] = funder.address
        if tx.get('to'):
            tx['to'] = Web3.to_checksum_address(tx['to'])

        if funder.account is None:
            tx_hash = self.web3.eth.send_transaction(tx)
        else:
            tx.setdefault('nonce', self.web3.eth.get_transaction_count(funder.address))
            tx.setdefault('gasPrice', self.web3.eth.gas_price)
            tx.setdefault('chainId', self.chain_id)
            if 'gas' not in tx:
                tx['gas'] = self.web3.eth.estimate_gas(tx)
            signed = funder.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)

        logger.info(f"Sent transaction {Web3.to_hex(tx_hash)} from {funder.address}, waiting for receipt")
        return self.web3.eth.wait_for_transaction_receipt(tx_hash)

    def send_raw_transaction(self, raw_tx: bytes):
        tx_hash = self.web3.eth.send_raw_transaction(raw_tx)
        logger.info(f"Sent raw transaction {Web3.to_hex(tx_hash)}, waiting for receipt")
        return self.web3.eth.wait_for_transaction_receipt(tx_hash)


def resolve_funder(network: NetworkContext, mnemonic_file: Optional[str]) -> Tuple[Funder, bool]:
    """Pick the funding identity.

    Returns the funder and whether factory deployment is implicitly allowed,
    which is the case for a node-managed account on a dev chain.
    """
    if mnemonic_file is not None:
        return Funder.from_account(load_funder_account(mnemonic_file)), False

    try:
        accounts = network.list_accounts()
    except Exception as e:
        raise ConfigurationError("must specify --mnemonic") from e

    if not accounts:
        raise ConfigurationError("fatal: no account. use --mnemonic (needed to fund account)")

    # for hardhat/anvil nodes, use account[0]
    funder = Funder(address=accounts[0])
    return funder, network.chain_id in DEV_CHAIN_IDS
