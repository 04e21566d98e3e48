"""
Decides whether the counterfactual account needs native currency before
operations are submitted, and sends the top-up
"""

import logging
from dataclasses import dataclass

from web3 import Web3

from config import EXECUTION_GAS_BUDGET
from network import Funder, NetworkContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundingDecision:
    required: int
    current: int
    should_fund: bool
    amount: int


def decide_funding(current_balance: int, gas_price: int,
                   execution_gas_budget: int = EXECUTION_GAS_BUDGET) -> FundingDecision:
    """Fund up to gas_price * budget, but only once below half of that"""
    required = gas_price * execution_gas_budget
    should_fund = current_balance < required // 2
    return FundingDecision(
        required=required,
        current=current_balance,
        should_fund=should_fund,
        amount=required - current_balance if should_fund else 0,
    )


def fund_account(network: NetworkContext, funder: Funder, address: str,
                 execution_gas_budget: int = EXECUTION_GAS_BUDGET) -> FundingDecision:
    """Top the account up to the required balance, waiting for the transfer to be mined"""
    balance = network.get_balance(address)
    decision = decide_funding(balance, network.get_gas_price(), execution_gas_budget)

    if not decision.should_fund:
        logger.info(f"Not funding account. balance {Web3.from_wei(balance, 'ether')} ETH is enough")
        return decision

    logger.info(f"Funding account {address} to {decision.required} wei (sending {decision.amount} wei)")
    receipt = network.send_transaction(funder, {'to': address, 'value': decision.amount})
    logger.info(f"Funding transaction mined in block {receipt['blockNumber']}")
    return decision
