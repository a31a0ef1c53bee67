"""
Integration tests for GET /api/billing/history.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from billflow.infrastructure.db.models import BillingHistoryModel


URL = "/api/billing/history"


def _row(user_id, amount: str, created_at: datetime, invoice: str, status: str = "PAID") -> BillingHistoryModel:
    return BillingHistoryModel(
        user_id=user_id,
        amount=Decimal(amount),
        currency="INR",
        status=status,
        plan_name="Pro",
        billing_reason="subscription_renewal",
        invoice_number=invoice,
        paid_at=created_at,
        created_at=created_at,
        updated_at=created_at,
        meta={},
    )


@pytest.fixture
async def history(store, user, other_user):
    await store.add(
        _row(user.id, "300", datetime(2024, 3, 1, tzinfo=timezone.utc), "REC-3"),
        _row(user.id, "100", datetime(2024, 1, 1, tzinfo=timezone.utc), "REC-1"),
        _row(user.id, "200", datetime(2024, 2, 1, tzinfo=timezone.utc), "REC-2"),
        _row(other_user.id, "999", datetime(2024, 1, 15, tzinfo=timezone.utc), "REC-X"),
    )


class TestBillingHistory:

    async def test_oldest_first_with_pagination(self, async_client, history, auth_headers):
        first = await async_client.get(URL, params={"page": 1, "limit": 2}, headers=auth_headers)
        second = await async_client.get(URL, params={"page": 2, "limit": 2}, headers=auth_headers)

        assert first.status_code == 200
        body = first.json()
        assert [row["invoiceNumber"] for row in body["history"]] == ["REC-1", "REC-2"]
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
        assert [row["invoiceNumber"] for row in second.json()["history"]] == ["REC-3"]

    async def test_stats_cover_all_matching_rows(self, async_client, history, auth_headers):
        response = await async_client.get(URL, params={"limit": 1}, headers=auth_headers)

        stats = response.json()["stats"]
        assert stats["totalTransactions"] == 3
        assert stats["totalAmount"] == 600
        assert stats["paidAmount"] == 600

    async def test_date_filters(self, async_client, history, auth_headers):
        response = await async_client.get(
            URL,
            params={"startDate": "2024-01-15T00:00:00", "endDate": "2024-02-15T00:00:00"},
            headers=auth_headers,
        )

        assert [row["invoiceNumber"] for row in response.json()["history"]] == ["REC-2"]
        assert response.json()["stats"]["totalAmount"] == 200

    async def test_status_filter(self, async_client, history, auth_headers):
        response = await async_client.get(URL, params={"status": "REFUNDED"}, headers=auth_headers)

        assert response.json()["history"] == []
        assert response.json()["pagination"]["totalPages"] == 0

    async def test_empty_history(self, async_client, user, auth_headers):
        response = await async_client.get(URL, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["history"] == []
        assert response.json()["stats"]["totalAmount"] == 0

    @pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
    async def test_invalid_paging(self, async_client, user, auth_headers, params):
        response = await async_client.get(URL, params=params, headers=auth_headers)
        assert response.status_code == 400
