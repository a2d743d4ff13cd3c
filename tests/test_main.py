from __future__ import annotations

from dataclasses import replace

from fastapi.testclient import TestClient
import pytest

import main
from ipguard.clients.cloudflare import CloudflareError
from ipguard.guard import RateGuard


class FakeBanClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = []
        self.error = error

    def ban(self, ip, reason=None):  # noqa: D401
        """Record the ban instead of calling Cloudflare."""

        self.calls.append((ip, reason))
        if self.error:
            raise self.error
        return True


@pytest.fixture()
def api_client(monkeypatch, clock):
    clock.set(100.0)
    guard = RateGuard(10, 2, 10, clock=clock)
    fake = FakeBanClient()
    monkeypatch.setattr(main, "guard", guard)
    monkeypatch.setattr(main, "get_ban_client", lambda: fake)
    with TestClient(main.app) as client:
        yield client, clock, fake, guard


def test_root_passes_through(api_client):
    client, _, fake, _ = api_client

    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "Successful response."
    assert fake.calls == []


def test_burst_from_one_client_triggers_ban(api_client):
    client, clock, fake, _ = api_client
    headers = {"X-Forwarded-For": "203.0.113.50"}

    client.get("/", headers=headers)
    clock.advance(0.3)
    response = client.get("/", headers=headers)

    assert response.status_code == 200
    assert fake.calls == [("203.0.113.50", "Banned IP address via Rate Limiter")]


def test_slow_client_is_not_banned(api_client):
    client, clock, fake, _ = api_client
    headers = {"X-Forwarded-For": "203.0.113.51"}

    for _ in range(3):
        client.get("/", headers=headers)
        clock.advance(5)

    assert fake.calls == []


def test_clients_are_tracked_separately(api_client):
    client, clock, fake, guard = api_client

    client.get("/", headers={"X-Forwarded-For": "203.0.113.1"})
    clock.advance(0.1)
    client.get("/", headers={"X-Forwarded-For": "203.0.113.2"})

    assert fake.calls == []
    assert sorted(guard.store.keys()) == ["203.0.113.1", "203.0.113.2"]


def test_reject_exceeded_returns_429(api_client, monkeypatch):
    client, clock, _, _ = api_client
    monkeypatch.setattr(main, "settings", replace(main.settings, reject_exceeded=True))
    headers = {"X-Forwarded-For": "203.0.113.52"}

    client.get("/", headers=headers)
    response = client.get("/", headers=headers)

    assert response.status_code == 429


def test_ban_failure_does_not_break_request(api_client, monkeypatch):
    client, _, _, _ = api_client
    failing = FakeBanClient(error=CloudflareError("Cloudflare error (500)."))
    monkeypatch.setattr(main, "get_ban_client", lambda: failing)
    headers = {"X-Forwarded-For": "203.0.113.53"}

    client.get("/", headers=headers)
    response = client.get("/", headers=headers)

    assert response.status_code == 200
    assert len(failing.calls) == 1


def test_healthz_reports_tracked_clients(api_client):
    client, _, _, _ = api_client

    response = client.get("/healthz", headers={"X-Forwarded-For": "203.0.113.60"})

    assert response.json() == {"status": "ok", "trackedClients": 1}


def test_lifespan_starts_scheduler(api_client):
    client, _, _, guard = api_client

    assert guard.scheduler.running


def test_untrusted_proxy_headers_fall_back_to_peer(api_client, monkeypatch):
    client, _, fake, guard = api_client
    monkeypatch.setattr(main, "settings", replace(main.settings, trust_proxy_headers=False))

    client.get("/", headers={"X-Forwarded-For": "203.0.113.70"})

    assert guard.store.keys() == ["testclient"]
