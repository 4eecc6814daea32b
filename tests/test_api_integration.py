"""
Integration tests for the Crowdfund Ledger API
Tests end-to-end campaign workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from crowdfund.api import app
from crowdfund.api.deps import CrowdfundSystem, get_system
from crowdfund.clock import ManualClock
from crowdfund.config import CrowdfundConfig
from crowdfund.token_client import InMemoryTokenLedger


T0 = 1_700_000_000
DAY = 86400
LEDGER = "crowdfund-ledger"


@pytest.fixture
def system():
    """In-memory system with funded backers and a controllable clock"""
    token = InMemoryTokenLedger(LEDGER)
    for backer in ("alice", "bob"):
        token.mint(backer, 1000)
        token.approve(backer, LEDGER, 1000)

    test_system = CrowdfundSystem(
        CrowdfundConfig(database_url="memory://", ledger_account=LEDGER),
        token_service=token,
        clock=ManualClock(T0)
    )
    yield test_system
    test_system.close()


@pytest.fixture
def client(system):
    """Test client with the system dependency replaced"""
    app.dependency_overrides[get_system] = lambda: system
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_account(account):
    return {"X-Account-Id": account}


def launch(client, goal=100, start_offset=0, end_offset=DAY, creator="creator"):
    r = client.post("/campaigns", json={
        "goal": goal,
        "start_offset": start_offset,
        "end_offset": end_offset
    }, headers=as_account(creator))
    assert r.status_code == 201
    return r.json()["campaign_id"]


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "campaigns" in r.json()["endpoints"]


class TestCampaignFlow:
    """End-to-end campaign lifecycle over HTTP"""

    def test_launch_and_get(self, client):
        r = client.post("/campaigns", json={
            "goal": 500,
            "start_offset": 60,
            "end_offset": 3600
        }, headers=as_account("creator"))
        assert r.status_code == 201
        data = r.json()
        assert data["campaign_id"] == 1
        assert data["start_at"] == T0 + 60
        assert data["end_at"] == T0 + 3600

        r = client.get("/campaigns/1")
        assert r.status_code == 200
        campaign = r.json()
        assert campaign["creator"] == "creator"
        assert campaign["goal"] == 500
        assert campaign["pledged"] == 0
        assert campaign["claimed"] is False
        assert campaign["phase"] == "not_started"

    def test_successful_campaign(self, client, system):
        campaign_id = launch(client)

        r = client.post(f"/campaigns/{campaign_id}/pledge", json={"amount": 70}, headers=as_account("alice"))
        assert r.status_code == 200
        assert r.json()["total_pledged"] == 70

        client.post(f"/campaigns/{campaign_id}/pledge", json={"amount": 50}, headers=as_account("bob"))
        r = client.post(f"/campaigns/{campaign_id}/unpledge", json={"amount": 20}, headers=as_account("bob"))
        assert r.status_code == 200
        assert r.json()["amount"] == 30
        assert r.json()["total_pledged"] == 100

        r = client.get(f"/campaigns/{campaign_id}/backers")
        assert r.json()["backers"] == {"alice": 70, "bob": 30}

        system.ledger.clock.advance(DAY + 1)
        r = client.post(f"/campaigns/{campaign_id}/claim", headers=as_account("creator"))
        assert r.status_code == 200
        assert r.json()["amount"] == 100
        assert system.token_service.balance_of("creator") == 100

        r = client.post(f"/campaigns/{campaign_id}/claim", headers=as_account("creator"))
        assert r.status_code == 409
        assert r.json()["error"] == "AlreadyClaimed"

    def test_failed_campaign_refund(self, client, system):
        campaign_id = launch(client, goal=500)
        client.post(f"/campaigns/{campaign_id}/pledge", json={"amount": 40}, headers=as_account("alice"))
        system.ledger.clock.advance(DAY + 1)

        r = client.post(f"/campaigns/{campaign_id}/refund", headers=as_account("alice"))
        assert r.status_code == 200
        assert r.json()["amount"] == 40
        assert system.token_service.balance_of("alice") == 1000

        r = client.get(f"/campaigns/{campaign_id}/pledges/alice")
        assert r.json()["amount"] == 0

    def test_cancel(self, client):
        campaign_id = launch(client, start_offset=60)

        r = client.delete(f"/campaigns/{campaign_id}", headers=as_account("creator"))
        assert r.status_code == 200

        r = client.get(f"/campaigns/{campaign_id}")
        assert r.status_code == 404
        assert r.json()["error"] == "NotFound"

        r = client.get("/campaigns")
        assert r.json() == {"count": 1, "campaigns": []}


class TestErrorMapping:
    """Ledger errors map onto HTTP status codes"""

    def test_validation_errors(self, client):
        r = client.post("/campaigns", json={"goal": 1, "start_offset": 10, "end_offset": 5},
                        headers=as_account("creator"))
        assert r.status_code == 400
        assert r.json()["error"] == "InvalidWindow"

        r = client.post("/campaigns", json={"goal": 1, "start_offset": 0, "end_offset": 31 * DAY},
                        headers=as_account("creator"))
        assert r.status_code == 400
        assert r.json()["error"] == "WindowTooLong"

    def test_not_creator(self, client):
        campaign_id = launch(client, start_offset=60)
        r = client.delete(f"/campaigns/{campaign_id}", headers=as_account("alice"))
        assert r.status_code == 403
        assert r.json()["error"] == "NotCreator"

    def test_timing_errors(self, client):
        campaign_id = launch(client, start_offset=60)
        r = client.post(f"/campaigns/{campaign_id}/pledge", json={"amount": 1}, headers=as_account("alice"))
        assert r.status_code == 409
        assert r.json()["error"] == "NotStarted"

    def test_transfer_failure(self, client, system):
        campaign_id = launch(client)
        r = client.post(f"/campaigns/{campaign_id}/pledge", json={"amount": 5000}, headers=as_account("alice"))
        assert r.status_code == 502
        assert r.json()["error"] == "TransferFailed"
        assert system.ledger.get_campaign(campaign_id).pledged == 0

    def test_missing_caller_header(self, client):
        r = client.post("/campaigns", json={"goal": 1, "start_offset": 0, "end_offset": 5})
        assert r.status_code == 422


class TestAuditEndpoints:
    """Audit trail over HTTP"""

    def test_events_and_verify(self, client):
        campaign_id = launch(client)
        client.post(f"/campaigns/{campaign_id}/pledge", json={"amount": 10}, headers=as_account("alice"))

        r = client.get("/audit/events", params={"campaign_id": campaign_id})
        assert r.status_code == 200
        types = [e["event_type"] for e in r.json()["events"]]
        assert types == ["campaign_launched", "pledge_added"]

        r = client.get("/audit/verify")
        assert r.status_code == 200
        assert r.json()["valid"] is True
