"""
Integration tests for the subscriber read endpoint.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from conftest import insert_subscriber
from factories import SERVICE_TOKEN

AUTH = {"Authorization": f"Bearer {SERVICE_TOKEN}"}


class TestSubscriptionSummary:
    @pytest.mark.asyncio
    async def test_summary(self, client, app):
        trial_end = datetime.now(timezone.utc) + timedelta(days=5, hours=2)
        user_id = await insert_subscriber(
            app.state.container.database,
            subscription_status="trialing",
            trial_end_date=trial_end,
            stripe_customer_id="cus_42",
        )
        response = await client.get(f"/api/v1/subscribers/{user_id}/subscription", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "trialing"
        assert data["has_pro_access"] is True
        assert data["trial_days_remaining"] == 6
        assert data["stripe_customer_id"] == "cus_42"

    @pytest.mark.asyncio
    async def test_free_subscriber(self, client, app_subscriber):
        response = await client.get(f"/api/v1/subscribers/{app_subscriber}/subscription", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["has_pro_access"] is False
        assert response.json()["trial_days_remaining"] is None

    @pytest.mark.asyncio
    async def test_unknown_subscriber(self, client):
        response = await client.get(f"/api/v1/subscribers/{uuid.uuid4()}/subscription", headers=AUTH)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_token(self, client, app_subscriber):
        response = await client.get(f"/api/v1/subscribers/{app_subscriber}/subscription")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_token(self, client, app_subscriber):
        response = await client.get(
            f"/api/v1/subscribers/{app_subscriber}/subscription",
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_disabled_without_token(self, client, app, app_subscriber, monkeypatch):
        monkeypatch.setattr(app.state.container.settings, "internal_api_token", "")
        response = await client.get(f"/api/v1/subscribers/{app_subscriber}/subscription", headers=AUTH)
        assert response.status_code == 404
