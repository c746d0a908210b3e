"""Integration tests for the prediction refresh endpoint."""

import json
from datetime import date, timedelta

import pytest
from automatenance.models import MaintenancePrediction
from automatenance.services.ai_cache import CACHE_PREFIX
from automatenance.services.prediction_repository import VehicleRepository
from conftest import (
    FREE_AI_TOKEN,
    FREE_TOKEN,
    OIL_HISTORY,
    PRO_TOKEN,
    USER_PRO,
    add_vehicle,
    provider_http_error,
    provider_timeout,
    scripted_client,
)
from httpx import AsyncClient
from sqlalchemy import select

REFRESH_URL = "/api/v1/predictions/refresh"

AI_REPLY = json.dumps(
    [
        {
            "title": "Oil Change",
            "description": "Synthetic oil service due soon.",
            "predicted_date": "2024-12-15",
            "predicted_mileage": 19500,
            "confidence": 82,
            "urgency": "medium",
            "refs": ["Owner manual"],
        },
        {
            "title": "Cabin Filter",
            "description": "Replace the cabin air filter.",
            "predicted_date": "2024-07-01",
            "confidence": 70,
        },
    ]
)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def predictions_for(db_session, vehicle_id: str):
    db_session.expire_all()
    result = await db_session.execute(
        select(MaintenancePrediction)
        .where(MaintenancePrediction.vehicle_id == vehicle_id)
        .order_by(MaintenancePrediction.title)
    )
    return list(result.scalars().all())


class TestRefreshGates:
    """Authentication, entitlement and budget checks."""

    @pytest.mark.asyncio
    async def test_missing_token_is_unauthorized(self, client: AsyncClient, subscriptions):
        response = await client.post(REFRESH_URL, json={})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_unknown_token_is_unauthorized(self, client: AsyncClient, subscriptions):
        response = await client.post(REFRESH_URL, json={}, headers=auth("bogus"))

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_plan_without_ai_predictions_is_forbidden(
        self, client: AsyncClient, subscriptions, fake_redis
    ):
        response = await client.post(REFRESH_URL, json={}, headers=auth(FREE_TOKEN))

        assert response.status_code == 403
        assert response.json() == {"error": "Pro required"}
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_free_budget_of_zero_returns_429_before_touching_predictions(
        self, client: AsyncClient, subscriptions, db_session, fake_redis
    ):
        await add_vehicle(db_session, "user-free-ai", "veh-free", records=OIL_HISTORY)
        db_session.add(
            MaintenancePrediction(
                user_id="user-free-ai",
                vehicle_id="veh-free",
                title="Existing",
                description="Left alone",
                confidence=50,
                urgency="low",
                basis={"source": "local", "features": {}, "rag_refs": []},
                inputs_hash="old",
            )
        )
        await db_session.commit()

        response = await client.post(REFRESH_URL, json={}, headers=auth(FREE_AI_TOKEN))

        assert response.status_code == 429
        assert response.json() == {"error": "Daily refresh limit reached"}
        rows = await predictions_for(db_session, "veh-free")
        assert [r.title for r in rows] == ["Existing"]
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_exhausted_pro_budget_returns_429(
        self, client: AsyncClient, subscriptions, cache_store
    ):
        await cache_store.put(
            f"refresh_calls:day:2024-08-01:{USER_PRO}", USER_PRO, {"count": 50}, 86400
        )

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.status_code == 429

    @pytest.mark.asyncio
    async def test_multi_vehicle_request_consumes_one_unit(
        self, client: AsyncClient, subscriptions, db_session, fake_redis
    ):
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)
        await add_vehicle(db_session, USER_PRO, "veh-b", records=OIL_HISTORY)

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.status_code == 200
        envelope = json.loads(fake_redis.data[f"{CACHE_PREFIX}refresh_calls:day:2024-08-01:{USER_PRO}"])
        assert envelope["value"] == {"count": 1}
        assert envelope["ttl_seconds"] == 86400


class TestBaselineRefresh:
    """Refresh with AI refinement disabled."""

    @pytest.mark.asyncio
    async def test_oil_change_history_produces_baseline_prediction(
        self, client: AsyncClient, subscriptions, db_session
    ):
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "updated": 1}

        [row] = await predictions_for(db_session, "veh-a")
        assert row.title == "Oil Change"
        assert row.predicted_date == date(2024, 12, 30)
        assert row.predicted_mileage == 20000
        assert row.confidence == 60
        assert row.urgency == "medium"
        assert row.basis["source"] == "local"
        assert row.basis["features"]["avg_days_by_type"] == {"oil change": 182}
        assert row.basis["features"]["avg_miles_by_type"] == {"oil change": 5000}
        assert len(row.inputs_hash) == 64

    @pytest.mark.asyncio
    async def test_empty_body_is_accepted(self, client: AsyncClient, subscriptions, db_session):
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        response = await client.post(REFRESH_URL, headers=auth(PRO_TOKEN))

        assert response.status_code == 200
        assert response.json()["updated"] == 1

    @pytest.mark.asyncio
    async def test_user_without_vehicles_updates_nothing(self, client: AsyncClient, subscriptions):
        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "updated": 0}

    @pytest.mark.asyncio
    async def test_refresh_replaces_previous_set(self, client: AsyncClient, subscriptions, db_session):
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))
        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        rows = await predictions_for(db_session, "veh-a")
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_scoped_refresh_leaves_other_vehicle_untouched(
        self, client: AsyncClient, subscriptions, db_session
    ):
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)
        await add_vehicle(db_session, USER_PRO, "veh-b", records=OIL_HISTORY)
        db_session.add(
            MaintenancePrediction(
                id="pred-b",
                user_id=USER_PRO,
                vehicle_id="veh-b",
                title="Keep Me",
                description="Belongs to vehicle B",
                confidence=40,
                urgency="low",
                basis={"source": "local", "features": {}, "rag_refs": []},
                inputs_hash="b-hash",
            )
        )
        await db_session.commit()

        response = await client.post(
            REFRESH_URL, json={"vehicleId": "veh-a"}, headers=auth(PRO_TOKEN)
        )

        assert response.json() == {"ok": True, "updated": 1}
        rows_b = await predictions_for(db_session, "veh-b")
        assert [(r.id, r.title, r.confidence) for r in rows_b] == [("pred-b", "Keep Me", 40)]

    @pytest.mark.asyncio
    async def test_unexpected_failure_returns_500(
        self, client: AsyncClient, subscriptions, monkeypatch
    ):
        async def boom(self, user_id, vehicle_id=None):
            raise RuntimeError("database went away")

        monkeypatch.setattr(VehicleRepository, "list_for_user", boom)

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.status_code == 500
        assert response.json() == {"error": "Server error"}


class TestAiRefinement:
    """Refresh with a scripted language-model provider."""

    @pytest.mark.asyncio
    async def test_ai_suggestions_are_persisted(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        refinement.client = scripted_client(lambda prompt: AI_REPLY)
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.json() == {"ok": True, "updated": 2}
        cabin, oil = await predictions_for(db_session, "veh-a")
        assert oil.basis["source"] == "ai"
        assert oil.basis["rag_refs"] == ["Owner manual"]
        assert oil.confidence == 82
        assert oil.urgency == "medium"
        assert cabin.urgency == "high"  # already past due
        assert cabin.predicted_mileage is None

        call = refinement.client.completions.calls[0]
        assert call["temperature"] == 0.4
        assert call["max_tokens"] == 500
        assert "VEHICLE: 2020 Honda Civic, mileage=16000" in call["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_unchanged_history_hits_cache_within_ttl(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        refinement.client = scripted_client(lambda prompt: AI_REPLY)
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        first = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))
        second = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert first.json() == second.json() == {"ok": True, "updated": 2}
        assert len(refinement.client.completions.calls) == 1
        rows = await predictions_for(db_session, "veh-a")
        assert {r.basis["source"] for r in rows} == {"ai"}

    @pytest.mark.asyncio
    async def test_stale_cache_triggers_new_call(
        self, client: AsyncClient, subscriptions, db_session, refinement, clock
    ):
        refinement.client = scripted_client(lambda prompt: AI_REPLY)
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))
        clock.now = clock.now + timedelta(seconds=86400)
        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert len(refinement.client.completions.calls) == 2

    @pytest.mark.asyncio
    async def test_new_history_invalidates_cache(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        refinement.client = scripted_client(lambda prompt: AI_REPLY)
        vehicle = await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))
        vehicle.mileage = 17000
        await db_session.commit()
        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert len(refinement.client.completions.calls) == 2

    @pytest.mark.asyncio
    async def test_provider_error_falls_back_for_that_vehicle_only(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        def handler(prompt):
            if "Civic" in prompt:
                return provider_http_error(500)
            return AI_REPLY

        refinement.client = scripted_client(handler)
        await add_vehicle(db_session, USER_PRO, "veh-x", model="Civic", records=OIL_HISTORY)
        await add_vehicle(db_session, USER_PRO, "veh-y", model="Accord", records=OIL_HISTORY)

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "updated": 3}
        rows_x = await predictions_for(db_session, "veh-x")
        rows_y = await predictions_for(db_session, "veh-y")
        assert [r.basis["source"] for r in rows_x] == ["local"]
        assert {r.basis["source"] for r in rows_y} == {"ai"}
        assert len(rows_y) == 2

    @pytest.mark.asyncio
    async def test_failed_call_is_not_cached(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        refinement.client = scripted_client(lambda prompt: provider_timeout())
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))
        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert len(refinement.client.completions.calls) == 2
        [row] = await predictions_for(db_session, "veh-a")
        assert row.basis["source"] == "local"

    @pytest.mark.asyncio
    async def test_malformed_reply_falls_back_to_baseline(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        refinement.client = scripted_client(lambda prompt: "Sure! Here are some ideas...")
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.json() == {"ok": True, "updated": 1}
        [row] = await predictions_for(db_session, "veh-a")
        assert row.basis["source"] == "local"

    @pytest.mark.asyncio
    async def test_empty_array_is_cached_and_baseline_used(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        refinement.client = scripted_client(lambda prompt: "[]")
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))
        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.json() == {"ok": True, "updated": 1}
        assert len(refinement.client.completions.calls) == 1
        [row] = await predictions_for(db_session, "veh-a")
        assert row.basis["source"] == "local"

    @pytest.mark.asyncio
    async def test_out_of_range_confidence_is_clamped(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        reply = json.dumps(
            [
                {"title": "A", "description": "too high", "confidence": 150},
                {"title": "B", "description": "too low", "confidence": -5},
                {"title": "C", "description": "fractional", "confidence": 42.7},
                {"title": "D", "description": "missing"},
            ]
        )
        refinement.client = scripted_client(lambda prompt: reply)
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        rows = await predictions_for(db_session, "veh-a")
        assert [(r.title, r.confidence) for r in rows] == [
            ("A", 99),
            ("B", 1),
            ("C", 43),
            ("D", 60),
        ]
        assert [r.urgency for r in rows] == ["medium", "low", "low", "low"]

    @pytest.mark.asyncio
    async def test_ai_list_is_capped_at_six(
        self, client: AsyncClient, subscriptions, db_session, refinement
    ):
        reply = json.dumps([{"title": f"Item {i}", "description": "x"} for i in range(9)])
        refinement.client = scripted_client(lambda prompt: reply)
        await add_vehicle(db_session, USER_PRO, "veh-a", records=OIL_HISTORY)

        response = await client.post(REFRESH_URL, json={}, headers=auth(PRO_TOKEN))

        assert response.json()["updated"] == 6
