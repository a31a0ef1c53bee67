"""
Unit tests for the simulated charge gateway.
"""

import random
import re
from decimal import Decimal

import pytest

from billflow.infrastructure.payments.gateway import SimulatedGateway


class FixedRandom(random.Random):
    """random() always returns the same draw."""

    def __init__(self, value: float):
        super().__init__(0)
        self._value = value

    def random(self):
        return self._value


class TestSimulatedGateway:

    @pytest.mark.parametrize(
        "method_type,prefix",
        [
            ("UPI", "UPI"),
            ("CREDIT_CARD", "CARD"),
            ("DEBIT_CARD", "CARD"),
            ("WALLET", "WALLET"),
            ("NET_BANKING", "TXN"),
        ],
    )
    async def test_success_external_id_format(self, method_type, prefix):
        gateway = SimulatedGateway(rng=FixedRandom(0.99))
        result = await gateway.attempt_charge(method_type, Decimal("100"))

        assert result.success is True
        assert result.failure_reason is None
        assert re.fullmatch(rf"{prefix}\d{{13}}[A-Z0-9]{{6}}", result.external_transaction_id)

    @pytest.mark.parametrize(
        "method_type,draw,reason",
        [
            ("UPI", 0.10, "UPI transaction declined by bank"),
            ("CREDIT_CARD", 0.15, "Insufficient funds or card declined"),
            ("DEBIT_CARD", 0.01, "Insufficient funds or card declined"),
            ("WALLET", 0.05, "Wallet payment failed"),
        ],
    )
    async def test_decline_at_or_below_rate(self, method_type, draw, reason):
        gateway = SimulatedGateway(rng=FixedRandom(draw))
        result = await gateway.attempt_charge(method_type, Decimal("100"))

        assert result.success is False
        assert result.external_transaction_id is None
        assert result.failure_reason == reason

    async def test_just_above_rate_succeeds(self):
        gateway = SimulatedGateway(rng=FixedRandom(0.1001))
        result = await gateway.attempt_charge("UPI", Decimal("100"))
        assert result.success is True

    async def test_unknown_instrument_never_declines(self):
        gateway = SimulatedGateway(rng=FixedRandom(0.0))
        result = await gateway.attempt_charge("CRYPTO", Decimal("100"))
        assert result.success is True
        assert result.external_transaction_id.startswith("TXN")

    async def test_instrument_type_is_case_insensitive(self):
        gateway = SimulatedGateway(rng=FixedRandom(0.0))
        result = await gateway.attempt_charge("upi", Decimal("100"))
        assert result.success is False

    async def test_upi_decline_rate_over_many_draws(self):
        gateway = SimulatedGateway(rng=random.Random(42))
        declines = 0
        for _ in range(2000):
            result = await gateway.attempt_charge("UPI", Decimal("10"))
            declines += not result.success
        assert 0.07 < declines / 2000 < 0.13
