"""
SimpleAccount API: counterfactual address, UserOperation signing and receipts
"""

import logging
import time
from typing import Optional

from eth_abi import encode
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from config import DEFAULT_GAS_LIMITS, ENTRYPOINT_V07, RECEIPT_POLL_INTERVAL, RECEIPT_TIMEOUT
from network import NetworkContext
from user_operations import (
    SignedUserOperation,
    UserOperation,
    create_execute_user_operation,
    to_packed_tuple,
)

logger = logging.getLogger(__name__)

CREATE_ACCOUNT_SELECTOR = bytes(Web3.keccak(text="createAccount(address,uint256)")[:4])
USER_OPERATION_EVENT_TOPIC = Web3.keccak(
    text="UserOperationEvent(bytes32,address,address,uint256,bool,uint256,uint256)"
)

# How far back to look for UserOperationEvent logs
RECEIPT_BLOCK_RANGE = 100

FACTORY_ABI = [{
    "inputs": [{"name": "owner", "type": "address"}, {"name": "salt", "type": "uint256"}],
    "name": "getAddress",
    "outputs": [{"name": "", "type": "address"}],
    "stateMutability": "view",
    "type": "function"
}]

PACKED_USER_OP_COMPONENTS = [
    {"name": "sender", "type": "address"},
    {"name": "nonce", "type": "uint256"},
    {"name": "initCode", "type": "bytes"},
    {"name": "callData", "type": "bytes"},
    {"name": "accountGasLimits", "type": "bytes32"},
    {"name": "preVerificationGas", "type": "uint256"},
    {"name": "gasFees", "type": "bytes32"},
    {"name": "paymasterAndData", "type": "bytes"},
    {"name": "signature", "type": "bytes"},
]

ENTRY_POINT_ABI = [
    {
        "inputs": [{"name": "sender", "type": "address"}, {"name": "key", "type": "uint192"}],
        "name": "getNonce",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "userOp", "type": "tuple", "components": PACKED_USER_OP_COMPONENTS}],
        "name": "getUserOpHash",
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "ops", "type": "tuple[]", "components": PACKED_USER_OP_COMPONENTS},
            {"name": "beneficiary", "type": "address"}
        ],
        "name": "handleOps",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
]


def counterfactual_address(network: NetworkContext, owner: str, factory_address: str, index: int) -> str:
    """Address the factory will deploy the (owner, index) account to"""
    factory = network.contract(factory_address, FACTORY_ABI)
    address = factory.functions.getAddress(Web3.to_checksum_address(owner), index).call()
    return Web3.to_checksum_address(address)


class SimpleAccountAPI:
    """Builds and signs UserOperations for one SimpleAccount"""

    def __init__(self, network: NetworkContext, entry_point_address: str, factory_address: str,
                 owner: LocalAccount, index: int = 0):
        self.network = network
        self.entry_point_address = Web3.to_checksum_address(entry_point_address)
        self.factory_address = Web3.to_checksum_address(factory_address)
        self.owner = owner
        self.index = index
        self._sender_address: Optional[str] = None
        self._entry_point = network.contract(self.entry_point_address, ENTRY_POINT_ABI)

    def get_counterfactual_address(self) -> str:
        if self._sender_address is None:
            self._sender_address = counterfactual_address(
                self.network, self.owner.address, self.factory_address, self.index
            )
        return self._sender_address

    def get_factory_data(self) -> bytes:
        """createAccount(owner, index) call data for the factory"""
        return CREATE_ACCOUNT_SELECTOR + encode(['address', 'uint256'], [self.owner.address, self.index])

    def get_nonce(self) -> int:
        """Get current nonce for smart account from EntryPoint"""
        nonce = self._entry_point.functions.getNonce(self.get_counterfactual_address(), 0).call()
        logger.info(f"Current nonce: {nonce}")
        return nonce

    def create_unsigned_user_op(self, target: str, data: bytes, value: int = 0) -> UserOperation:
        sender = self.get_counterfactual_address()
        deployed = self.network.is_deployed(sender)

        user_operation = create_execute_user_operation(
            sender=sender,
            target=target,
            data=data,
            nonce=self.get_nonce(),
            value=value,
            factory=None if deployed else self.factory_address,
            factory_data=b'' if deployed else self.get_factory_data(),
        )

        # Execution cannot be simulated before the account exists
        if deployed:
            user_operation.call_gas_limit = self.network.estimate_gas({
                'from': self.entry_point_address,
                'to': sender,
                'data': Web3.to_hex(user_operation.call_data),
            })
        else:
            user_operation.call_gas_limit = DEFAULT_GAS_LIMITS["call"]

        gas_price = self.network.get_gas_price()
        user_operation.max_fee_per_gas = gas_price
        user_operation.max_priority_fee_per_gas = gas_price
        return user_operation

    def get_user_op_hash(self, user_operation: UserOperation) -> bytes:
        return bytes(self._entry_point.functions.getUserOpHash(to_packed_tuple(user_operation)).call())

    def sign_user_op(self, user_operation: UserOperation) -> SignedUserOperation:
        user_op_hash = self.get_user_op_hash(user_operation)
        # v0.7 SimpleAccount expects an EIP-191 signature, v0.8 signs the EIP-712 hash directly
        if self.entry_point_address.lower() == ENTRYPOINT_V07.lower():
            signed = self.owner.sign_message(encode_defunct(primitive=user_op_hash))
        else:
            signed = self.owner.unsafe_sign_hash(user_op_hash)
        return SignedUserOperation(user_operation=user_operation, signature=bytes(signed.signature))

    def create_signed_user_op(self, target: str, data: bytes, value: int = 0) -> SignedUserOperation:
        return self.sign_user_op(self.create_unsigned_user_op(target, data, value))

    def get_user_op_receipt(self, user_op_hash: str, timeout: float = RECEIPT_TIMEOUT,
                            interval: float = RECEIPT_POLL_INTERVAL) -> Optional[str]:
        """Poll the entry point for the transaction that included the operation"""
        deadline = time.monotonic() + timeout
        while True:
            from_block = max(self.network.block_number() - RECEIPT_BLOCK_RANGE, 0)
            logs = self.network.get_logs({
                'address': self.entry_point_address,
                'topics': [Web3.to_hex(USER_OPERATION_EVENT_TOPIC), user_op_hash],
                'fromBlock': from_block,
            })
            if logs:
                return Web3.to_hex(logs[0]['transactionHash'])
            if time.monotonic() + interval >= deadline:
                return None
            time.sleep(interval)
