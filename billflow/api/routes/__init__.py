# API Routes Module
from billflow.api.routes import (
    billing,
    payments,
    webhooks,
)

__all__ = [
    "billing",
    "payments",
    "webhooks",
]
