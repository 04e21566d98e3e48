"""
UserOperation records and call data helpers for SimpleAccount (EntryPoint v0.7/v0.8)
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from config import DEFAULT_GAS_LIMITS

logger = logging.getLogger(__name__)

# Function selector for execute(address,uint256,bytes)
EXECUTE_SELECTOR = bytes(Web3.keccak(text="execute(address,uint256,bytes)")[:4])


@dataclass
class UserOperation:
    """Unpacked ERC-4337 user operation, without signature"""
    sender: str
    nonce: int
    call_data: bytes
    call_gas_limit: int = DEFAULT_GAS_LIMITS["call"]
    verification_gas_limit: int = DEFAULT_GAS_LIMITS["verification"]
    pre_verification_gas: int = DEFAULT_GAS_LIMITS["pre_verification"]
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    factory: Optional[str] = None
    factory_data: bytes = b''
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: bytes = b''


@dataclass(frozen=True)
class SignedUserOperation:
    """Wrapper holding a UserOperation and its signature"""
    user_operation: UserOperation
    signature: bytes


def encode_execute_call(target: str, value: int, data: bytes) -> bytes:
    """Encode SimpleAccount.execute(dest, value, func)"""
    return EXECUTE_SELECTOR + encode(
        ['address', 'uint256', 'bytes'],
        [Web3.to_checksum_address(target), value, bytes(data)]
    )


def create_execute_user_operation(
    sender: str,
    target: str,
    data: bytes,
    nonce: int,
    value: int = 0,
    factory: Optional[str] = None,
    factory_data: bytes = b'',
) -> UserOperation:
    """Create a UserOperation calling ``target`` through the account's execute()"""
    call_data = encode_execute_call(target, value, data)
    logger.info(f"Created execute call to {target} with data 0x{bytes(data).hex()}")

    return UserOperation(
        sender=sender,
        nonce=nonce,
        call_data=call_data,
        factory=factory,
        factory_data=factory_data if factory else b'',
    )


def pack_uints(high: int, low: int) -> bytes:
    """Pack two uint128 values into a bytes32"""
    return high.to_bytes(16, 'big') + low.to_bytes(16, 'big')


def get_init_code(op: UserOperation) -> bytes:
    if not op.factory:
        return b''
    return bytes(HexBytes(op.factory)) + op.factory_data


def get_paymaster_and_data(op: UserOperation) -> bytes:
    if not op.paymaster:
        return b''
    return (
        bytes(HexBytes(op.paymaster))
        + pack_uints(op.paymaster_verification_gas_limit, op.paymaster_post_op_gas_limit)
        + op.paymaster_data
    )


def to_packed_tuple(op: UserOperation, signature: bytes = b'') -> Tuple:
    """PackedUserOperation as an ABI tuple for EntryPoint calls"""
    return (
        Web3.to_checksum_address(op.sender),
        op.nonce,
        get_init_code(op),
        op.call_data,
        pack_uints(op.verification_gas_limit, op.call_gas_limit),
        op.pre_verification_gas,
        pack_uints(op.max_priority_fee_per_gas, op.max_fee_per_gas),
        get_paymaster_and_data(op),
        signature,
    )
