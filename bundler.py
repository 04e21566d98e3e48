"""
Bundler JSON-RPC client and UserOperation wire format (EntryPoint v0.7/v0.8)
"""

import logging
from typing import Any, Dict, List

import requests
from hexbytes import HexBytes

from errors import BundlerRpcError, ConfigurationError
from user_operations import SignedUserOperation, UserOperation

logger = logging.getLogger(__name__)

BUNDLER_TIMEOUT = 30


def _hex_bytes(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def convert_user_operation_to_bundler_format(signed_user_op: SignedUserOperation) -> Dict:
    """Convert a SignedUserOperation to the bundler's JSON format"""
    op = signed_user_op.user_operation

    bundler_dict = {
        "sender": op.sender,
        "nonce": hex(op.nonce),
        "callData": _hex_bytes(op.call_data),
        "callGasLimit": hex(op.call_gas_limit),
        "verificationGasLimit": hex(op.verification_gas_limit),
        "preVerificationGas": hex(op.pre_verification_gas),
        "maxFeePerGas": hex(op.max_fee_per_gas),
        "maxPriorityFeePerGas": hex(op.max_priority_fee_per_gas),
        "signature": _hex_bytes(signed_user_op.signature),
    }

    # Factory fields only while the account is not yet deployed
    if op.factory:
        bundler_dict.update({
            "factory": op.factory,
            "factoryData": _hex_bytes(op.factory_data),
        })

    if op.paymaster:
        bundler_dict.update({
            "paymaster": op.paymaster,
            "paymasterVerificationGasLimit": hex(op.paymaster_verification_gas_limit),
            "paymasterPostOpGasLimit": hex(op.paymaster_post_op_gas_limit),
            "paymasterData": _hex_bytes(op.paymaster_data),
        })

    return bundler_dict


def convert_bundler_format_to_user_operation(bundler_dict: Dict) -> SignedUserOperation:
    """Parse the bundler's JSON format back into a SignedUserOperation"""
    def quantity(key: str) -> int:
        value = bundler_dict.get(key)
        return int(value, 16) if value and value != "0x" else 0

    def data(key: str) -> bytes:
        value = bundler_dict.get(key)
        return bytes(HexBytes(value)) if value else b''

    op = UserOperation(
        sender=bundler_dict["sender"],
        nonce=quantity("nonce"),
        call_data=data("callData"),
        call_gas_limit=quantity("callGasLimit"),
        verification_gas_limit=quantity("verificationGasLimit"),
        pre_verification_gas=quantity("preVerificationGas"),
        max_fee_per_gas=quantity("maxFeePerGas"),
        max_priority_fee_per_gas=quantity("maxPriorityFeePerGas"),
        factory=bundler_dict.get("factory") or None,
        factory_data=data("factoryData"),
        paymaster=bundler_dict.get("paymaster") or None,
        paymaster_verification_gas_limit=quantity("paymasterVerificationGasLimit"),
        paymaster_post_op_gas_limit=quantity("paymasterPostOpGasLimit"),
        paymaster_data=data("paymasterData"),
    )
    return SignedUserOperation(user_operation=op, signature=data("signature"))


class BundlerClient:
    """Client for an ERC-4337 bundler serving one entry point on one chain"""

    def __init__(self, bundler_url: str, entry_point_address: str, chain_id: int):
        self.bundler_url = bundler_url
        self.entry_point_address = entry_point_address
        self.chain_id = chain_id
        self._validated = False

    def validate_chain_id(self) -> None:
        """Check the bundler serves the same chain and entry point"""
        if self._validated:
            return

        bundler_chain_id = int(self._make_bundler_request("eth_chainId", []), 16)
        if bundler_chain_id != self.chain_id:
            raise ConfigurationError(
                f"Bundler at {self.bundler_url} is on chain {bundler_chain_id}, network is on chain {self.chain_id}"
            )

        supported = self.get_supported_entry_points()
        if self.entry_point_address.lower() not in (ep.lower() for ep in supported):
            logger.warning(f"Bundler does not report entry point {self.entry_point_address} (supports {supported})")

        self._validated = True

    def get_supported_entry_points(self) -> List[str]:
        return self._make_bundler_request("eth_supportedEntryPoints", [])

    def send_user_op_to_bundler(self, signed_user_op: SignedUserOperation) -> str:
        """Send SignedUserOperation to bundler and return the operation hash"""
        self.validate_chain_id()
        logger.info("Sending UserOperation to bundler...")

        user_op_dict = convert_user_operation_to_bundler_format(signed_user_op)
        logger.debug(f"Full UserOp to bundler: {user_op_dict}")
        user_op_hash = self._make_bundler_request(
            "eth_sendUserOperation", [user_op_dict, self.entry_point_address]
        )
        logger.info(f"UserOperation sent successfully: {user_op_hash}")
        return user_op_hash

    def _make_bundler_request(self, method: str, params: List) -> Any:
        """Make JSON-RPC request to bundler"""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1
        }

        response = requests.post(
            self.bundler_url,
            json=payload,
            headers={'Content-Type': 'application/json'},
            timeout=BUNDLER_TIMEOUT
        )

        try:
            result = response.json()
        except ValueError:
            result = None

        if isinstance(result, dict) and 'error' in result:
            error = result['error'] or {}
            message = error.get('message', 'Unknown error')
            logger.error(f"Bundler error: {message}")
            raise BundlerRpcError(message, code=error.get('code'), data=error.get('data'))

        if response.status_code != 200 or not isinstance(result, dict) or 'result' not in result:
            raise BundlerRpcError(f"HTTP error {response.status_code} from bundler for {method}: {response.text}")

        return result['result']
