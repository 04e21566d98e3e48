"""
Configuration for the ERC-4337 account-abstraction runner
"""

import os
import time
from dataclasses import dataclass
from typing import Optional

# Network constants
ENTRYPOINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
ENTRYPOINT_V08 = "0x4337084D9E255Ff0702461CF8895CE9E3b5Ff108"
DEFAULT_ENTRY_POINT = ENTRYPOINT_V08

# Arachnid deterministic deployment proxy (CREATE2)
DETERMINISTIC_DEPLOYER = "0x4e59b44847b379578588920ca78fbf26c0b4956c"
DETERMINISTIC_DEPLOYER_SIGNER = "0x3fab184622dc19b6109349b94811493bf2a45362"
DETERMINISTIC_DEPLOYER_GAS_PRICE = 100 * 10**9
DETERMINISTIC_DEPLOYER_GAS_LIMIT = 100000
# Public pre-signed deployment of the proxy (nonce 0 of the signer, no chain id)
DETERMINISTIC_DEPLOYER_TX = (
    "0xf8a58085174876e800830186a08080b853604580600e600039806000f350fe"
    "7fffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffe036"
    "01600081602082378035828234f58015156039578182fd5b8082525050506014600c"
    "f31ba02222222222222222222222222222222222222222222222222222222222222222"
    "a02222222222222222222222222222222222222222222222222222222222222222"
)

DEFAULT_NETWORK = "http://localhost:8545"
DEFAULT_BUNDLER_URL = "http://localhost:3000/rpc"
DEFAULT_FACTORY_ARTIFACT = "artifacts/SimpleAccountFactory.json"

# Chains where the node's own account may deploy the factory unasked
DEV_CHAIN_IDS = (1337, 31337)

# Throwaway owner key; the owner only signs, it never sends transactions
DEFAULT_ACCOUNT_OWNER_KEY = "0x" + "7" * 64

# Gas units the account must be able to pay for before submitting operations
EXECUTION_GAS_BUDGET = 4_000_000

# Default gas limits for UserOperations
DEFAULT_GAS_LIMITS = {
    "call": 300000,
    "verification": 1000000,
    "pre_verification": 60000,
}

# Receipt polling, in seconds
RECEIPT_TIMEOUT = 30
RECEIPT_POLL_INTERVAL = 5

# Self bundler
HARDHAT_BUNDLER_ACCOUNT = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEFAULT_SELF_BUNDLER_PORT = 3000


@dataclass
class RunnerConfig:
    """Configuration for a single runner invocation"""

    network: str = DEFAULT_NETWORK
    bundler_url: str = DEFAULT_BUNDLER_URL
    entry_point_address: str = DEFAULT_ENTRY_POINT
    mnemonic_file: Optional[str] = None
    index: Optional[int] = None
    deploy_factory: bool = False
    self_bundler: bool = False
    show_stack_traces: bool = False
    factory_artifact: str = DEFAULT_FACTORY_ARTIFACT
    account_owner_key: str = DEFAULT_ACCOUNT_OWNER_KEY
    infura_id: Optional[str] = None
    deployer_proxy_tx: str = DETERMINISTIC_DEPLOYER_TX
    self_bundler_port: int = DEFAULT_SELF_BUNDLER_PORT

    def __post_init__(self):
        # A random index deploys a fresh account on every run
        if self.index is None:
            self.index = int(time.time() * 1000)

    @classmethod
    def from_options(cls, opts) -> "RunnerConfig":
        """Build configuration from parsed CLI options and the environment"""
        return cls(
            network=opts.network,
            bundler_url=opts.bundlerUrl,
            entry_point_address=opts.entryPoint,
            mnemonic_file=opts.mnemonic,
            index=opts.nonce,
            deploy_factory=bool(opts.deployFactory),
            self_bundler=bool(opts.selfBundler),
            show_stack_traces=bool(opts.show_stack_traces),
            factory_artifact=opts.factoryArtifact or os.environ.get('FACTORY_ARTIFACT', DEFAULT_FACTORY_ARTIFACT),
            account_owner_key=os.environ.get('ACCOUNT_OWNER_KEY', DEFAULT_ACCOUNT_OWNER_KEY),
            infura_id=os.environ.get('INFURA_ID'),
            deployer_proxy_tx=os.environ.get('DEPLOYER_PROXY_TX', DETERMINISTIC_DEPLOYER_TX),
            self_bundler_port=int(os.environ.get('SELF_BUNDLER_PORT', DEFAULT_SELF_BUNDLER_PORT)),
        )
