"""
ERC-4337 Runner

A diagnostic client for an account-abstraction pipeline:
1. Ensures the SimpleAccount factory is deployed at its deterministic address
2. Funds a counterfactual account from an operator key
3. Submits two UserOperations through a bundler and reports the result
"""

import argparse
import logging
import sys
from typing import List, Optional

from config import (
    DEFAULT_BUNDLER_URL,
    DEFAULT_ENTRY_POINT,
    DEFAULT_FACTORY_ARTIFACT,
    DEFAULT_NETWORK,
    RunnerConfig,
)
from runner import run

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

__version__ = "0.8.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run UserOperations against an ERC-4337 bundler")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("--network", default=DEFAULT_NETWORK, help="network name or url")
    parser.add_argument("--mnemonic", metavar="FILE",
                        help="mnemonic/private-key file of signer account (to fund account)")
    parser.add_argument("--bundlerUrl", default=DEFAULT_BUNDLER_URL, help="bundler URL")
    parser.add_argument("--entryPoint", default=DEFAULT_ENTRY_POINT,
                        help="address of the supported EntryPoint contract")
    parser.add_argument("--nonce", type=int,
                        help="account creation nonce. default to random (deploy new account)")
    parser.add_argument("--deployFactory", action="store_true",
                        help='Deploy the "account deployer" on this network (default for testnet)')
    parser.add_argument("--factoryArtifact", metavar="FILE",
                        help="JSON artifact of the account factory; required, none is bundled "
                             f"(default: $FACTORY_ARTIFACT, else {DEFAULT_FACTORY_ARTIFACT})")
    parser.add_argument("--show-stack-traces", action="store_true", help="Show stack traces.")
    parser.add_argument("--selfBundler", action="store_true",
                        help="run bundler in-process (for debugging the bundler)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run once and translate any failure into a non-zero exit status"""
    opts = build_parser().parse_args(argv)

    try:
        config = RunnerConfig.from_options(opts)
        report = run(config)
    except Exception as e:
        if opts.show_stack_traces:
            logger.exception(f"Run failed: {e}")
        else:
            logger.error(f"Run failed: {e}")
        return 1

    for n, result in enumerate(report.results, start=1):
        logger.info(f"op {n}: userOpHash={result.user_op_hash} txid={result.transaction_hash}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
