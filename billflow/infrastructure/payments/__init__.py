"""
Payments Infrastructure Module

Charge simulation and the Razorpay gateway client.
"""

from billflow.infrastructure.payments.gateway import ChargeResult, PaymentGateway, SimulatedGateway
from billflow.infrastructure.payments.razorpay_service import RazorpayService, get_razorpay_service

__all__ = [
    "ChargeResult",
    "PaymentGateway",
    "SimulatedGateway",
    "RazorpayService",
    "get_razorpay_service",
]
