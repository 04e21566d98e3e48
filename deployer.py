"""
Deterministic (CREATE2) deployment of the account factory
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from config import (
    DETERMINISTIC_DEPLOYER,
    DETERMINISTIC_DEPLOYER_GAS_LIMIT,
    DETERMINISTIC_DEPLOYER_GAS_PRICE,
    DETERMINISTIC_DEPLOYER_SIGNER,
    DETERMINISTIC_DEPLOYER_TX,
)
from errors import ConfigurationError, DeploymentFailure, MissingFactory
from network import Funder, NetworkContext

logger = logging.getLogger(__name__)


def create2_address(deployer: str, salt: Union[int, bytes], init_code: bytes) -> str:
    """keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]"""
    salt_bytes = salt.to_bytes(32, 'big') if isinstance(salt, int) else bytes(salt).rjust(32, b'\x00')
    digest = Web3.keccak(b'\xff' + bytes(HexBytes(deployer)) + salt_bytes + bytes(Web3.keccak(init_code)))
    return Web3.to_checksum_address(Web3.to_hex(digest[12:]))


@dataclass
class FactoryDescriptor:
    """Bytecode and constructor arguments of the account factory"""
    bytecode: bytes
    constructor_types: List[str] = field(default_factory=list)
    constructor_args: List[Any] = field(default_factory=list)
    name: str = "SimpleAccountFactory"

    @property
    def init_code(self) -> bytes:
        if not self.constructor_types:
            return self.bytecode
        return self.bytecode + encode(self.constructor_types, self.constructor_args)

    @classmethod
    def from_artifact(cls, path: str, constructor_args: List[Any]) -> "FactoryDescriptor":
        """Load a Hardhat or Foundry JSON artifact"""
        try:
            with open(path, "r") as f:
                artifact = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"Cannot load factory artifact {path}: {e}. "
                f"Pass the compiled SimpleAccountFactory JSON with --factoryArtifact or FACTORY_ARTIFACT"
            ) from e

        bytecode = artifact.get('bytecode')
        # Foundry nests the creation code under "object"
        if isinstance(bytecode, dict):
            bytecode = bytecode.get('object')
        if not bytecode or bytecode == "0x":
            raise ConfigurationError(f"Factory artifact {path} has no bytecode")

        constructor = next((item for item in artifact.get('abi', []) if item.get('type') == 'constructor'), None)
        constructor_types = [i['type'] for i in constructor['inputs']] if constructor else []
        if len(constructor_types) != len(constructor_args):
            raise ConfigurationError(
                f"Factory constructor takes {len(constructor_types)} arguments, got {len(constructor_args)}"
            )

        return cls(
            bytecode=bytes(HexBytes(bytecode)),
            constructor_types=constructor_types,
            constructor_args=list(constructor_args),
            name=artifact.get('contractName', cls.name),
        )


class DeterministicDeployer:
    """Deploys contracts through the CREATE2 deployment proxy"""

    def __init__(self, network: NetworkContext, funder: Optional[Funder] = None,
                 proxy_deployment_tx: Optional[str] = DETERMINISTIC_DEPLOYER_TX):
        self.network = network
        self.funder = funder
        self.proxy_deployment_tx = proxy_deployment_tx

    @staticmethod
    def get_address(descriptor: FactoryDescriptor, salt: int = 0) -> str:
        return create2_address(DETERMINISTIC_DEPLOYER, salt, descriptor.init_code)

    def is_contract_deployed(self, address: str) -> bool:
        return self.network.is_deployed(address)

    def deterministic_deploy(self, descriptor: FactoryDescriptor, salt: int = 0) -> str:
        """Deploy through the proxy and verify code is present afterwards"""
        if self.funder is None:
            raise DeploymentFailure(f"Cannot deploy {descriptor.name}: no funding account")

        address = self.get_address(descriptor, salt)
        self._ensure_proxy_deployed()

        logger.info(f"Deploying {descriptor.name} to {address}")
        receipt = self.network.send_transaction(self.funder, {
            'to': DETERMINISTIC_DEPLOYER,
            'data': Web3.to_hex(salt.to_bytes(32, 'big') + descriptor.init_code),
            'value': 0,
        })
        if receipt['status'] != 1:
            raise DeploymentFailure(
                f"{descriptor.name} deployment reverted in tx {Web3.to_hex(receipt['transactionHash'])}"
            )
        if not self.is_contract_deployed(address):
            raise DeploymentFailure(f"{descriptor.name} deployment left no code at {address}")

        logger.info(f"{descriptor.name} deployed at {address}")
        return address

    def _ensure_proxy_deployed(self) -> None:
        if self.is_contract_deployed(DETERMINISTIC_DEPLOYER):
            return
        if not self.proxy_deployment_tx:
            raise DeploymentFailure(
                f"Deterministic deployment proxy not present at {DETERMINISTIC_DEPLOYER}. "
                f"Unset DEPLOYER_PROXY_TX to use the public pre-signed deployment transaction"
            )

        # The pre-signed transaction pays for itself from a fixed signer
        needed = DETERMINISTIC_DEPLOYER_GAS_PRICE * DETERMINISTIC_DEPLOYER_GAS_LIMIT
        balance = self.network.get_balance(DETERMINISTIC_DEPLOYER_SIGNER)
        if balance < needed:
            logger.info(f"Funding deployment proxy signer {DETERMINISTIC_DEPLOYER_SIGNER}")
            self.network.send_transaction(self.funder, {
                'to': DETERMINISTIC_DEPLOYER_SIGNER,
                'value': needed - balance,
            })

        receipt = self.network.send_raw_transaction(bytes(HexBytes(self.proxy_deployment_tx)))
        if receipt['status'] != 1 or not self.is_contract_deployed(DETERMINISTIC_DEPLOYER):
            raise DeploymentFailure(f"Failed to deploy deterministic deployment proxy at {DETERMINISTIC_DEPLOYER}")
        logger.info(f"Deterministic deployment proxy deployed at {DETERMINISTIC_DEPLOYER}")


def ensure_factory_deployed(network: NetworkContext, descriptor: FactoryDescriptor,
                            funder: Optional[Funder] = None,
                            proxy_deployment_tx: Optional[str] = DETERMINISTIC_DEPLOYER_TX) -> str:
    """Return the factory address, deploying it only when a funder is supplied"""
    address = DeterministicDeployer.get_address(descriptor)
    if network.is_deployed(address):
        logger.info(f"{descriptor.name} already deployed at {address}")
        return address

    if funder is None:
        raise MissingFactory(address)

    DeterministicDeployer(network, funder, proxy_deployment_tx).deterministic_deploy(descriptor)
    return address
