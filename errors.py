"""
Failure taxonomy for the runner. Core code raises these; only the CLI
entry point turns them into a process exit status.
"""

from typing import Any, Optional


class RunnerError(Exception):
    """Base class for every failure the runner reports"""


class ConfigurationError(RunnerError):
    """No usable signer, unreadable credentials or mismatched endpoints"""


class MissingFactory(RunnerError):
    """The account factory has no code and deployment was not permitted"""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"AccountDeployer not deployed at {address}. run with --deployFactory")


class DeploymentFailure(RunnerError):
    """Factory deployment reverted or left no code behind"""


class BundlerRpcError(RunnerError):
    """JSON-RPC error returned by the bundler, message kept verbatim"""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class GasShortfall(RunnerError):
    """Bundler reported that an operation underpays (values in gwei)"""

    def __init__(self, paid: int, expected: int, percentage: int, missing: int):
        self.paid = paid
        self.expected = expected
        self.percentage = percentage
        self.missing = missing
        super().__init__(
            f"Error: Paid {paid}, expected {expected} . Paid {percentage}%, missing {missing} "
        )
