"""
Payment Gateway Adapter

Charges a payment instrument and reports the outcome. The simulated
gateway stands in for a real processor in development and tests.
"""

import asyncio
import logging
import random
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from billflow.domain.billing import PaymentMethodType


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of a single charge attempt."""
    success: bool
    external_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None


class PaymentGateway(ABC):
    """Interface every charge backend implements."""

    @abstractmethod
    async def attempt_charge(
        self,
        payment_method_type: str,
        amount: Decimal,
    ) -> ChargeResult:
        """
        Attempt to move ``amount`` using an instrument of the given type.

        Declines are returned as data, never raised.
        """
        pass


# (external id prefix, decline probability, decline reason) per instrument
_INSTRUMENT_PROFILES = {
    PaymentMethodType.UPI.value: ("UPI", 0.10, "UPI transaction declined by bank"),
    PaymentMethodType.CREDIT_CARD.value: ("CARD", 0.15, "Insufficient funds or card declined"),
    PaymentMethodType.DEBIT_CARD.value: ("CARD", 0.15, "Insufficient funds or card declined"),
    PaymentMethodType.WALLET.value: ("WALLET", 0.05, "Wallet payment failed"),
}

_DEFAULT_PREFIX = "TXN"

_ID_ALPHABET = string.ascii_uppercase + string.digits


class SimulatedGateway(PaymentGateway):
    """
    Simulated processor with per-instrument decline rates.

    UPI declines 10% of the time, cards 15%, wallets 5%; any other
    instrument always succeeds.

    Args:
        rng: Random source (seed it for deterministic tests)
        delay_seconds: Simulated processing latency
    """

    def __init__(self, rng: Optional[random.Random] = None, delay_seconds: float = 0.0):
        self._rng = rng or random.Random()
        self._delay_seconds = delay_seconds

    def _external_id(self, prefix: str) -> str:
        tail = "".join(self._rng.choice(_ID_ALPHABET) for _ in range(6))
        return f"{prefix}{time.time_ns() // 1_000_000}{tail}"

    async def attempt_charge(
        self,
        payment_method_type: str,
        amount: Decimal,
    ) -> ChargeResult:
        if self._delay_seconds > 0:
            await asyncio.sleep(self._delay_seconds)

        profile = _INSTRUMENT_PROFILES.get(str(payment_method_type).upper())
        if profile is None:
            return ChargeResult(success=True, external_transaction_id=self._external_id(_DEFAULT_PREFIX))

        prefix, decline_rate, reason = profile
        if self._rng.random() > decline_rate:
            return ChargeResult(success=True, external_transaction_id=self._external_id(prefix))

        logger.info(f"Simulated {payment_method_type} charge of {amount} declined")
        return ChargeResult(success=False, failure_reason=reason)
