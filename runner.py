"""
Runner for exercising a bundler end to end: provisions the account factory,
funds a counterfactual SimpleAccount and submits UserOperations through it
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from bundler import BundlerClient
from config import DEFAULT_ENTRY_POINT, DETERMINISTIC_DEPLOYER_TX, RunnerConfig
from deployer import FactoryDescriptor, ensure_factory_deployed
from errors import GasShortfall
from funding import FundingDecision, fund_account
from network import Funder, NetworkContext, resolve_funder, resolve_network_url
from smart_account import SimpleAccountAPI

logger = logging.getLogger(__name__)

# Hint emitted by the bundler when an operation underpays, amounts in wei-scaled gas
PAID_EXPECTED_PATTERN = re.compile(r"paid (\d+) expected (\d+)")
GWEI = 10**9

# Test operation: the account calls its own entryPoint() getter
ENTRY_POINT_GETTER = bytes(Web3.keccak(text="entryPoint()")[:4])


def classify_failure(error: Exception) -> Exception:
    """Turn a bundler "paid N expected M" hint into a GasShortfall.

    Any other error is returned unchanged.
    """
    match = PAID_EXPECTED_PATTERN.search(str(error))
    if match is None:
        return error

    paid = int(match.group(1)) // GWEI
    expected = int(match.group(2)) // GWEI
    percentage = paid * 100 // expected if expected else 0
    return GasShortfall(paid=paid, expected=expected, percentage=percentage, missing=expected - paid)


@dataclass
class UserOpResult:
    user_op_hash: str
    transaction_hash: Optional[str]


@dataclass
class RunReport:
    account_address: str
    funding: FundingDecision
    results: List[UserOpResult]


class Runner:
    """Submits UserOperations for one (owner, index) SimpleAccount.

    The account owner only signs operations. Funding and factory deployment
    are paid for by a separate funder.
    """

    def __init__(self, network: NetworkContext, bundler_url: str, account_owner: LocalAccount,
                 entry_point_address: str = DEFAULT_ENTRY_POINT, index: int = 0):
        self.network = network
        self.bundler_url = bundler_url
        self.account_owner = account_owner
        self.entry_point_address = entry_point_address
        self.index = index
        self.bundler_client: Optional[BundlerClient] = None
        self.account_api: Optional[SimpleAccountAPI] = None

    def init(self, factory_descriptor: FactoryDescriptor, deployment_funder: Optional[Funder] = None,
             proxy_deployment_tx: Optional[str] = DETERMINISTIC_DEPLOYER_TX) -> "Runner":
        """Ensure the factory exists, then wire up the bundler and account API"""
        chain_id = self.network.chain_id
        factory_address = ensure_factory_deployed(
            self.network, factory_descriptor, deployment_funder, proxy_deployment_tx
        )

        self.bundler_client = BundlerClient(self.bundler_url, self.entry_point_address, chain_id)
        self.account_api = SimpleAccountAPI(
            network=self.network,
            entry_point_address=self.entry_point_address,
            factory_address=factory_address,
            owner=self.account_owner,
            index=self.index,
        )
        return self

    def get_address(self) -> str:
        return self.account_api.get_counterfactual_address()

    def run_user_op(self, target: str, data: bytes) -> UserOpResult:
        signed_user_op = self.account_api.create_signed_user_op(target, data)
        try:
            user_op_hash = self.bundler_client.send_user_op_to_bundler(signed_user_op)
            tx_hash = self.account_api.get_user_op_receipt(user_op_hash)
        except Exception as e:
            classified = classify_failure(e)
            if classified is e:
                raise
            raise classified from e

        logger.info(f"reqId {user_op_hash} txid={tx_hash}")
        return UserOpResult(user_op_hash=user_op_hash, transaction_hash=tx_hash)


def run(config: RunnerConfig, network: Optional[NetworkContext] = None) -> RunReport:
    """Provision, fund and exercise an account. Raises on any failure."""
    if network is None:
        network = NetworkContext.from_url(resolve_network_url(config.network, config.infura_id))

    self_bundler = None
    bundler_url = config.bundler_url
    if config.self_bundler:
        # deferred: Flask is only needed when debugging with an in-process bundler
        from self_bundler import start_self_bundler
        self_bundler = start_self_bundler(network, config.entry_point_address, config.self_bundler_port)
        bundler_url = self_bundler.url

    try:
        funder, dev_chain = resolve_funder(network, config.mnemonic_file)
        deploy_factory = config.deploy_factory or dev_chain

        account_owner = Account.from_key(config.account_owner_key)
        logger.info(f"using account index={config.index}")

        descriptor = FactoryDescriptor.from_artifact(config.factory_artifact, [config.entry_point_address])
        runner = Runner(
            network, bundler_url, account_owner, config.entry_point_address, config.index
        ).init(descriptor, funder if deploy_factory else None, config.deployer_proxy_tx)

        address = runner.get_address()
        balance = network.get_balance(address)
        logger.info(
            f"account address {address} deployed={network.is_deployed(address)} "
            f"bal={Web3.from_wei(balance, 'ether')}"
        )

        decision = fund_account(network, funder, address)

        logger.info(f"data=0x{ENTRY_POINT_GETTER.hex()}")
        results = [runner.run_user_op(address, ENTRY_POINT_GETTER)]
        logger.info("after run1")
        results.append(runner.run_user_op(address, ENTRY_POINT_GETTER))
        logger.info("after run2")

        return RunReport(account_address=address, funding=decision, results=results)
    finally:
        if self_bundler is not None:
            self_bundler.stop()
