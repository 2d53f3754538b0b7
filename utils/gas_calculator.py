"""
Gas Calculator
Prices pending transactions from the node's suggested gas price
"""

from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger

from blockchain.intents import IntentKind
from utils.errors import GasEstimationUnavailable, MalformedIntent


# Protocol minimum for a plain transfer
MIN_GAS_LIMIT = 21000


@dataclass(frozen=True)
class GasQuote:
    """Gas price (wei per unit) and gas limit for one transaction"""
    price_per_unit: int
    gas_limit: int

    def __post_init__(self):
        if self.price_per_unit <= 0:
            raise ValueError(f"Gas price must be positive, got {self.price_per_unit}")
        if self.gas_limit < MIN_GAS_LIMIT:
            raise ValueError(f"Gas limit must be at least {MIN_GAS_LIMIT}, got {self.gas_limit}")

    @property
    def max_fee(self) -> int:
        """Upper bound on the fee in wei"""
        return self.price_per_unit * self.gas_limit


class GasCalculator:
    """
    Escalated legacy gas pricing

    adjusted price = suggested price * numerator // denominator
    (12 / 10 by default, integer truncation). One RPC read per quote.
    """

    def __init__(self, node, config: Dict):
        """
        Initialize Gas Calculator

        Args:
            node: Chain node
            config: Engine configuration
        """
        self.node = node

        gas_settings = config['gas_settings']
        self.numerator = gas_settings['price_multiplier_numerator']
        self.denominator = gas_settings['price_multiplier_denominator']
        self.default_limits = {
            IntentKind.TRANSFER: gas_settings['gas_limit_transfer'],
            IntentKind.DEPLOY: gas_settings['gas_limit_contract'],
            IntentKind.CALL: gas_settings['gas_limit_contract']
        }

    def adjust_price(self, suggested_price: int) -> int:
        """Apply the escalation multiplier"""
        return suggested_price * self.numerator // self.denominator

    def get_suggested_price(self) -> int:
        """
        Read the node's suggested gas price

        Raises:
            GasEstimationUnavailable: If the node errors or returns a non-positive price
        """
        try:
            suggested = self.node.get_gas_price()
        except Exception as e:
            logger.error(f"Error getting gas price: {e}")
            raise GasEstimationUnavailable(f"Node could not supply a gas price: {e}") from e

        if suggested is None or suggested <= 0:
            raise GasEstimationUnavailable(f"Node returned unusable gas price: {suggested}")

        return suggested

    def quote(
        self,
        account: str,
        kind: IntentKind = IntentKind.TRANSFER,
        gas_limit: Optional[int] = None
    ) -> GasQuote:
        """
        Price a pending transaction

        Args:
            account: Sending address (for logging)
            kind: Intent category selecting the default gas limit
            gas_limit: Caller override for the gas limit

        Returns:
            GasQuote

        Raises:
            GasEstimationUnavailable: If no price is available
            MalformedIntent: If the gas limit override is below 21000
        """
        limit = gas_limit if gas_limit is not None else self.default_limits[kind]
        if limit < MIN_GAS_LIMIT:
            raise MalformedIntent(f"Gas limit {limit} is below the {MIN_GAS_LIMIT} minimum")

        suggested = self.get_suggested_price()
        adjusted = self.adjust_price(suggested)

        if adjusted <= 0:
            raise GasEstimationUnavailable(f"Adjusted gas price is zero (suggested {suggested})")

        logger.debug(
            f"Gas quote for {account}: {suggested} -> {adjusted} wei/gas, limit {limit}"
        )

        return GasQuote(price_per_unit=adjusted, gas_limit=limit)

    def escalate(self, quote: GasQuote) -> GasQuote:
        """
        Bump an existing quote once more by the multiplier

        Only for callers deciding to resubmit; the engine never does this itself.
        """
        bumped = self.adjust_price(quote.price_per_unit)
        logger.info(f"Escalated gas price: {quote.price_per_unit} -> {bumped} wei/gas")
        return GasQuote(price_per_unit=bumped, gas_limit=quote.gas_limit)
