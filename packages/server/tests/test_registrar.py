"""
Tests for external registration batches against mocked vendor APIs.

Covers:
- Users without a recoverable password fail without a network call
- Local validation before any request
- Per-user failure isolation within a batch, including per-user timeouts
- Concurrency bound on vendor calls
- MyDoctor bearer from grant or project credentials
- TG Calabria single service login per batch, and batch failure when it fails
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from sqlmodel import select

from app.core.crypto import encrypt
from app.integrations.mydoctor import MyDoctorRegistrar
from app.integrations.registrar import NO_USERS_MESSAGE, PASSWORD_UNAVAILABLE
from app.integrations.registry import get_registrar
from app.integrations.tg_calabria import AUTH_FAILED_MESSAGE, TGCalabriaRegistrar
from app.models.project_membership import ProjectMembership
from app.services.provisioning import provision


class Recorder:
    """MockTransport handler that records requests and answers from a callable."""

    def __init__(self, respond):
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content)


async def _memberships(session, grant):
    result = await session.execute(select(ProjectMembership).where(ProjectMembership.grant_id == grant.id))
    return {m.user_id: m for m in result.scalars().all()}


async def _grant_with_members(factory, session, slug, users, credentials=None):
    company = await factory.company("Studio Bianchi")
    project = await factory.project(slug)
    members = [await factory.user(company, email, **kwargs) for email, kwargs in users]
    grant = await factory.grant(company, project, credentials=credentials)
    await provision(grant, session)
    return grant, members


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_registry_lookup():
    assert isinstance(get_registrar("mydoctor"), MyDoctorRegistrar)
    assert isinstance(get_registrar("tg-calabria"), TGCalabriaRegistrar)
    assert get_registrar("crm-docs") is None


# ---------------------------------------------------------------------------
# MyDoctor
# ---------------------------------------------------------------------------

class TestMyDoctorRegistration:
    @pytest.mark.asyncio
    async def test_no_members(self, factory, session):
        company = await factory.company()
        project = await factory.project("mydoctor")
        grant = await factory.grant(company, project)
        recorder = Recorder(lambda r: httpx.Response(201, json={}))

        result = await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.success is False
        assert result.message == NO_USERS_MESSAGE
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_success_stores_external_id(self, factory, session):
        grant, (user,) = await _grant_with_members(
            factory, session, "mydoctor", [("doc@example.com", {"name": "Dr. Verdi"})]
        )
        recorder = Recorder(
            lambda r: httpx.Response(201, json={"success": True, "data": {"user": {"_id": "md-1"}}})
        )

        result = await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.success is True
        assert result.results.total == 1
        assert result.results.success[0].external_user_id == "md-1"
        assert recorder.paths() == ["/api/auth/register"]

        sent = _body(recorder.requests[0])
        assert sent == {
            "fullName": "Dr. Verdi",
            "email": "doc@example.com",
            "password": "secret-pass-1",
            "confirm_password": "secret-pass-1",
            "role": "DOCTOR",
        }

        memberships = await _memberships(session, grant)
        assert memberships[user.id].external_user_id == "md-1"

    @pytest.mark.asyncio
    async def test_missing_password_skips_network(self, factory, session):
        grant, _ = await _grant_with_members(
            factory, session, "mydoctor", [("nopass@example.com", {"password": None})]
        )
        recorder = Recorder(lambda r: httpx.Response(201, json={}))

        result = await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.success is False
        assert result.results.failed[0].error == PASSWORD_UNAVAILABLE
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_local_validation(self, factory, session):
        grant, _ = await _grant_with_members(
            factory,
            session,
            "mydoctor",
            [("blank@example.com", {"name": "   "}), ("short@example.com", {"password": "abc"})],
        )
        recorder = Recorder(lambda r: httpx.Response(201, json={}))

        result = await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        errors = {f.email: f.error for f in result.results.failed}
        assert errors == {
            "blank@example.com": "User fullName is required",
            "short@example.com": "Password must be at least 6 characters",
        }
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, factory, session):
        grant, (taken, fresh) = await _grant_with_members(
            factory,
            session,
            "mydoctor",
            [("a-taken@example.com", {}), ("b-fresh@example.com", {})],
        )

        def respond(request):
            if _body(request)["email"] == "a-taken@example.com":
                return httpx.Response(422, json={"errors": {"email": ["already exists"]}})
            return httpx.Response(201, json={"data": {"user": {"_id": "md-2"}}})

        recorder = Recorder(respond)
        result = await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.success is True
        assert result.results.total == 2
        assert [s.email for s in result.results.success] == ["b-fresh@example.com"]
        failure = result.results.failed[0]
        assert failure.email == "a-taken@example.com"
        assert failure.error == "Email: already exists"
        assert failure.error_details == {"email": ["already exists"]}

        memberships = await _memberships(session, grant)
        assert memberships[taken.id].external_user_id is None
        assert memberships[fresh.id].external_user_id == "md-2"

    @pytest.mark.asyncio
    async def test_connection_error_fails_user(self, factory, session):
        grant, _ = await _grant_with_members(factory, session, "mydoctor", [("doc@example.com", {})])

        def respond(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await MyDoctorRegistrar(client=Recorder(respond).client()).register_grant(grant, session)

        assert result.success is False
        assert result.results.failed[0].error == "connection refused"

    @pytest.mark.asyncio
    async def test_grant_api_key_sent_as_bearer(self, factory, session):
        grant, _ = await _grant_with_members(
            factory, session, "mydoctor", [("doc@example.com", {})], credentials={"api_key": "k-123"}
        )
        recorder = Recorder(lambda r: httpx.Response(201, json={"user_id": "x"}))

        await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        assert recorder.requests[0].headers["Authorization"] == "Bearer k-123"

    @pytest.mark.asyncio
    async def test_project_api_key_used_without_grant_key(self, factory, session):
        company = await factory.company()
        project = await factory.project("mydoctor", api_key=encrypt("project-key-9"))
        await factory.user(company, "doc@example.com")
        grant = await factory.grant(company, project)
        await provision(grant, session)
        recorder = Recorder(lambda r: httpx.Response(201, json={"user_id": "x"}))

        await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        assert recorder.requests[0].headers["Authorization"] == "Bearer project-key-9"

    @pytest.mark.asyncio
    async def test_malformed_email_never_sent(self, factory, session):
        grant, _ = await _grant_with_members(
            factory, session, "mydoctor", [("a@b..c", {}), ("no-at-sign.example.com", {})]
        )
        recorder = Recorder(lambda r: httpx.Response(201, json={}))

        result = await MyDoctorRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.success is False
        assert [f.error for f in result.results.failed] == ["Valid email is required"] * 2
        assert recorder.requests == []


# ---------------------------------------------------------------------------
# Batch scheduling
# ---------------------------------------------------------------------------

class TestBatchScheduling:
    @pytest.mark.asyncio
    async def test_slow_user_times_out_others_continue(self, factory, session):
        grant, (slow, fast) = await _grant_with_members(
            factory, session, "mydoctor", [("a-slow@example.com", {}), ("b-fast@example.com", {})]
        )

        async def respond(request):
            if _body(request)["email"] == "a-slow@example.com":
                await asyncio.sleep(2)
            return httpx.Response(201, json={"data": {"user": {"_id": "md-fast"}}})

        registrar = MyDoctorRegistrar(client=Recorder(respond).client(), timeout=0.05)
        result = await registrar.register_grant(grant, session)

        assert result.success is True
        assert [s.email for s in result.results.success] == ["b-fast@example.com"]
        assert result.results.failed[0].email == "a-slow@example.com"
        assert result.results.failed[0].error == "Registration timed out after 0.05 seconds"

        memberships = await _memberships(session, grant)
        assert memberships[slow.id].external_user_id is None
        assert memberships[fast.id].external_user_id == "md-fast"

    @pytest.mark.asyncio
    async def test_concurrency_limit(self, factory, session):
        grant, _ = await _grant_with_members(
            factory, session, "mydoctor", [(f"doc{i}@example.com", {}) for i in range(5)]
        )
        in_flight = 0
        peak = 0

        async def respond(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return httpx.Response(201, json={"user_id": "x"})

        recorder = Recorder(respond)
        registrar = MyDoctorRegistrar(client=recorder.client(), concurrency=2)
        result = await registrar.register_grant(grant, session)

        assert result.results.total == 5
        assert len(result.results.success) == 5
        assert len(recorder.requests) == 5
        assert peak == 2


# ---------------------------------------------------------------------------
# TG Calabria
# ---------------------------------------------------------------------------

class TestTGCalabriaRegistration:
    @pytest.mark.asyncio
    async def test_single_service_login(self, factory, session):
        grant, members = await _grant_with_members(
            factory,
            session,
            "tg-calabria",
            [("one@example.com", {"name": "Uno"}), ("two@example.com", {"name": "Due"})],
        )

        def respond(request):
            if request.url.path.endswith("/auth/login"):
                return httpx.Response(200, json={"data": {"token": "svc-token"}})
            body = _body(request)
            return httpx.Response(
                201, json={"data": {"id": body["email"][:3], "email": body["email"], "role": "EDITOR"}}
            )

        recorder = Recorder(respond)
        result = await TGCalabriaRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.success is True
        logins = [p for p in recorder.paths() if p.endswith("/auth/login")]
        registers = [r for r in recorder.requests if r.url.path.endswith("/crm/users/register")]
        assert len(logins) == 1
        assert len(registers) == 2
        for request in registers:
            assert request.headers["Authorization"] == "Bearer svc-token"
            body = _body(request)
            assert body["role"] == "EDITOR"
            assert body["companyName"] == "Studio Bianchi"

        memberships = await _memberships(session, grant)
        one = memberships[members[0].id]
        assert one.external_user_id == "one"
        assert one.external_username == "one@example.com"
        assert one.external_role == "EDITOR"

    @pytest.mark.asyncio
    async def test_service_login_without_token_fails_batch(self, factory, session):
        grant, _ = await _grant_with_members(factory, session, "tg-calabria", [("one@example.com", {})])
        recorder = Recorder(lambda r: httpx.Response(200, json={"data": {}}))

        result = await TGCalabriaRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.success is False
        assert result.message == AUTH_FAILED_MESSAGE
        assert result.results is None
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_invalid_email_rejected_locally(self, factory, session):
        grant, _ = await _grant_with_members(factory, session, "tg-calabria", [("not-an-email", {})])
        recorder = Recorder(lambda r: httpx.Response(200, json={"token": "svc-token"}))

        result = await TGCalabriaRegistrar(client=recorder.client()).register_grant(grant, session)

        assert result.results.failed[0].error == "Valid email is required"
        assert all(p.endswith("/auth/login") for p in recorder.paths())
