"""
Integration Tests for the HTTP API
Tests for: auth, admin guards, scheduler endpoints and the error envelope
"""
import pytest
from httpx import AsyncClient

from dream60.services import scheduler_service

from tests.helpers import add_participant, at, auth_headers, make_player, seed_daily, slot_config


class TestHealth:
    async def test_root(self, client: AsyncClient):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    async def test_health_without_redis(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.json() == {"status": "healthy", "redis": "unavailable"}


class TestAuth:
    async def test_register_login_and_me(self, client: AsyncClient, redis):
        register = await client.post(
            "/api/auth/register",
            json={
                "username": "player1",
                "email": "player1@example.com",
                "mobile": "9876543210",
                "password": "secret123",
            },
        )
        assert register.status_code == 200
        redis.hset.assert_awaited()

        login = await client.post(
            "/api/auth/login", json={"username": "player1", "password": "secret123"}
        )
        assert login.status_code == 200
        token = login.json()["token"]

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["username"] == "player1"
        assert me.json()["is_admin"] is False

    async def test_duplicate_username(self, client: AsyncClient):
        body = {"username": "player2", "email": "p2@example.com", "password": "secret123"}
        await client.post("/api/auth/register", json=body)

        response = await client.post(
            "/api/auth/register", json={**body, "email": "other@example.com"}
        )

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Username already exists",
            "data": None,
        }

    async def test_wrong_password(self, client: AsyncClient):
        await client.post(
            "/api/auth/register",
            json={"username": "player3", "email": "p3@example.com", "password": "secret123"},
        )

        response = await client.post(
            "/api/auth/login", json={"username": "player3", "password": "wrong-pass"}
        )

        assert response.status_code == 401

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401

    async def test_bad_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["message"] == "Could not validate credentials"


class TestAdminApi:
    async def test_players_cannot_reach_admin_routes(self, client: AsyncClient):
        response = await client.get("/api/admin/master-auctions", headers=auth_headers(make_player()))

        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    async def test_master_then_daily_creation(self, client: AsyncClient, admin_headers):
        created = await client.post(
            "/api/admin/master-auctions",
            json={
                "daily_auction_config": [
                    slot_config(1, "09:00").model_dump(mode="json"),
                    slot_config(2, "10:00").model_dump(mode="json"),
                ]
            },
            headers=admin_headers,
        )
        assert created.status_code == 200
        assert created.json()["data"]["total_auctions_per_day"] == 2

        daily = await client.post("/api/admin/scheduler/create-daily", headers=admin_headers)

        body = daily.json()
        assert body["message"] == "Daily auction created successfully"
        assert body["data"]["daily_auction"]["daily_auction_code"] == "DA000001"
        assert body["data"]["hourly"]["created"] == 2

    async def test_invalid_master_is_a_validation_error(self, client: AsyncClient, admin_headers):
        response = await client.post(
            "/api/admin/master-auctions",
            json={"daily_auction_config": []},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"

    async def test_manual_tick_goes_live(self, client: AsyncClient, db_session, admin_headers, redis):
        await seed_daily(db_session, slot_config(1, "09:00"))

        response = await client.post("/api/admin/scheduler/auto-activate", headers=admin_headers)

        assert response.json()["data"]["activated"] == 1
        redis.delete.assert_awaited()

    async def test_unknown_auction_status_update(self, client: AsyncClient, admin_headers):
        response = await client.put(
            "/api/admin/hourly-auctions/missing/status",
            json={"status": "LIVE"},
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["success"] is False


class TestSchedulerApi:
    @pytest.fixture
    async def live_auction(self, db_session):
        _, hourly = await seed_daily(db_session, slot_config(1, "09:00"), slot_config(2, "10:00"))
        await scheduler_service.auto_activate_auctions(db_session, at(9, 1))
        return hourly[0]

    async def test_status(self, client: AsyncClient, live_auction):
        response = await client.get("/api/scheduler/status")

        data = response.json()["data"]
        assert data["current_live_auction"]["hourly_auction_id"] == live_auction.hourly_auction_id
        assert data["next_upcoming_auction"]["time_slot"] == "10:00"

    async def test_today_hourly_auctions(self, client: AsyncClient, live_auction):
        response = await client.get("/api/scheduler/hourly-auctions")

        assert [a["time_slot"] for a in response.json()["data"]] == ["09:00", "10:00"]

    async def test_place_bid(self, client: AsyncClient, db_session, live_auction):
        player = make_player()
        await add_participant(db_session, live_auction, player, 20, at(9, 2))

        response = await client.post(
            "/api/scheduler/place-bid",
            json={"hourly_auction_id": live_auction.hourly_auction_id, "auction_value": 75},
            headers=auth_headers(player),
        )

        assert response.status_code == 200
        assert response.json()["data"]["round_number"] == 1

        history = await client.get("/api/scheduler/user-history", headers=auth_headers(player))
        data = history.json()["data"]
        assert data["history"][0]["total_amount_bid"] == 75
        assert data["stats"]["total_auctions"] == 0

    async def test_bid_from_non_participant(self, client: AsyncClient, live_auction):
        response = await client.post(
            "/api/scheduler/place-bid",
            json={"hourly_auction_id": live_auction.hourly_auction_id, "auction_value": 75},
            headers=auth_headers(make_player()),
        )

        assert response.status_code == 403
        assert response.json()["success"] is False

    async def test_bid_without_amount(self, client: AsyncClient, live_auction):
        response = await client.post(
            "/api/scheduler/place-bid",
            json={"hourly_auction_id": live_auction.hourly_auction_id},
            headers=auth_headers(make_player()),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"

    async def test_live_auction_endpoint(self, client: AsyncClient, live_auction):
        response = await client.get("/api/scheduler/live-auction")

        assert response.json()["data"]["hourly_auction_id"] == live_auction.hourly_auction_id
