"""
In-process bundler for local debugging.

Relays each UserOperation straight to EntryPoint.handleOps from a node
account. It performs no admission checks of its own; the entry point's
validation is the only gate.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request
from web3 import Web3
from web3.exceptions import Web3Exception
from werkzeug.serving import make_server

from bundler import convert_bundler_format_to_user_operation
from config import DEFAULT_SELF_BUNDLER_PORT, HARDHAT_BUNDLER_ACCOUNT
from errors import ConfigurationError
from network import Funder, NetworkContext
from smart_account import ENTRY_POINT_ABI
from user_operations import to_packed_tuple

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"

# JSON-RPC error codes
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
REJECTED_BY_ENTRY_POINT = -32500

BUNDLER_ACCOUNT_TARGET_BALANCE = Web3.to_wei(1, 'ether')
SIGNER_MIN_BALANCE_FOR_TOP_UP = Web3.to_wei(10000, 'ether')


class SelfBundlerError(Exception):
    def __init__(self, message: str, code: int = REJECTED_BY_ENTRY_POINT):
        self.code = code
        super().__init__(message)


def fund_bundler_account(network: NetworkContext, signer: Funder) -> None:
    """Top up the well-known Hardhat account when the node signer is rich enough"""
    balance = network.get_balance(HARDHAT_BUNDLER_ACCOUNT)
    signer_balance = network.get_balance(signer.address)
    if balance < BUNDLER_ACCOUNT_TARGET_BALANCE and signer_balance >= SIGNER_MIN_BALANCE_FOR_TOP_UP:
        logger.info(f"funding hardhat account {HARDHAT_BUNDLER_ACCOUNT}")
        network.send_transaction(signer, {
            'to': HARDHAT_BUNDLER_ACCOUNT,
            'value': BUNDLER_ACCOUNT_TARGET_BALANCE - balance,
        })


class SelfBundler:
    """Minimal JSON-RPC bundler served from a background thread"""

    def __init__(self, network: NetworkContext, entry_point_address: str, signer: Funder,
                 host: str = DEFAULT_HOST, port: int = DEFAULT_SELF_BUNDLER_PORT):
        self.network = network
        self.entry_point_address = Web3.to_checksum_address(entry_point_address)
        self.signer = signer
        self.host = host
        self.port = port
        self.app = Flask(__name__)
        self._entry_point = network.contract(self.entry_point_address, ENTRY_POINT_ABI)
        self._receipts: Dict[str, Dict] = {}
        self._server = None
        self._thread: Optional[threading.Thread] = None
        self._methods = {
            "eth_chainId": self._chain_id,
            "eth_supportedEntryPoints": self._supported_entry_points,
            "eth_sendUserOperation": self._send_user_operation,
            "eth_getUserOperationReceipt": self._get_user_operation_receipt,
        }
        self._setup_routes()

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/rpc"

    def _setup_routes(self) -> None:
        """Set up Flask routes"""
        self.app.route("/rpc", methods=["POST"])(self.handle_rpc)
        self.app.route("/health", methods=["GET"])(self.health_check)

    def handle_rpc(self):
        payload = request.get_json(force=True, silent=True) or {}
        request_id = payload.get("id")
        handler = self._methods.get(payload.get("method"))
        if handler is None:
            return self._error(request_id, METHOD_NOT_FOUND, f"Method not found: {payload.get('method')}")

        try:
            result = handler(payload.get("params") or [])
        except SelfBundlerError as e:
            logger.error(f"Self bundler rejected request: {e}")
            return self._error(request_id, e.code, str(e))

        return jsonify({"jsonrpc": "2.0", "id": request_id, "result": result})

    def health_check(self):
        return "OK", 200

    def _error(self, request_id: Any, code: int, message: str):
        return jsonify({"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}})

    def _chain_id(self, params: List) -> str:
        return hex(self.network.chain_id)

    def _supported_entry_points(self, params: List) -> List[str]:
        return [self.entry_point_address]

    def _send_user_operation(self, params: List) -> str:
        if len(params) != 2:
            raise SelfBundlerError("expected [userOp, entryPoint]", INVALID_PARAMS)
        user_op_dict, entry_point = params
        if entry_point.lower() != self.entry_point_address.lower():
            raise SelfBundlerError(f"unsupported entry point {entry_point}", INVALID_PARAMS)

        try:
            signed = convert_bundler_format_to_user_operation(user_op_dict)
            packed = to_packed_tuple(signed.user_operation, signed.signature)
        except (KeyError, TypeError, ValueError) as e:
            raise SelfBundlerError(f"invalid user operation: {e}", INVALID_PARAMS) from e

        try:
            user_op_hash = Web3.to_hex(self._entry_point.functions.getUserOpHash(packed).call())
            tx = self._entry_point.functions.handleOps([packed], self.signer.address).build_transaction({
                'from': self.signer.address,
            })
            receipt = self.network.send_transaction(self.signer, tx)
        except (Web3Exception, ValueError) as e:
            raise SelfBundlerError(f"handleOps failed: {e}") from e

        tx_hash = Web3.to_hex(receipt['transactionHash'])
        if receipt['status'] != 1:
            raise SelfBundlerError(f"handleOps reverted in tx {tx_hash}")

        logger.info(f"Self bundler included {user_op_hash} in {tx_hash}")
        self._receipts[user_op_hash] = {
            "userOpHash": user_op_hash,
            "entryPoint": self.entry_point_address,
            "sender": signed.user_operation.sender,
            "nonce": hex(signed.user_operation.nonce),
            "success": True,
            "receipt": {
                "transactionHash": tx_hash,
                "blockNumber": hex(receipt['blockNumber']),
                "status": hex(receipt['status']),
            },
        }
        return user_op_hash

    def _get_user_operation_receipt(self, params: List) -> Optional[Dict]:
        if not params:
            raise SelfBundlerError("expected [userOpHash]", INVALID_PARAMS)
        return self._receipts.get(params[0])

    def start(self) -> None:
        self._server = make_server(self.host, self.port, self.app)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info(f"Self bundler listening on {self.url}")

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._thread.join()
        self._server = None
        logger.info("Self bundler stopped")


def start_self_bundler(network: NetworkContext, entry_point_address: str,
                       port: int = DEFAULT_SELF_BUNDLER_PORT) -> SelfBundler:
    """Fund the bundler account and start an in-process bundler on the node's signer"""
    accounts = network.list_accounts()
    if not accounts:
        raise ConfigurationError("--selfBundler needs an unlocked node account")
    node_signer = Funder(address=accounts[0])
    fund_bundler_account(network, node_signer)

    # handleOps is sent by the hardhat account when the node manages it
    known = {a.lower(): a for a in accounts}
    bundler_signer = Funder(address=known.get(HARDHAT_BUNDLER_ACCOUNT.lower(), accounts[0]))

    bundler = SelfBundler(network, entry_point_address, bundler_signer, port=port)
    bundler.start()
    return bundler
