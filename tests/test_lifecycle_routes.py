"""HTTP tests for the homeowner and contractor lifecycle routes."""

from decimal import Decimal

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.domain.enums import ServiceRequestStatus, UserRole
from homepro.services.auth_service import create_access_token


def _build_app_client(db_session: AsyncSession):
    """Build an HTTPX AsyncClient wired to a test FastAPI app.

    Uses a fresh FastAPI app with the lifecycle routers and error handlers,
    sharing the test's database session.
    """
    from fastapi import FastAPI
    from homepro.app.error_handlers import install_error_handlers
    from homepro.app.routes.auth import router as auth_router
    from homepro.app.routes.homes import connections_router, router as homes_router
    from homepro.app.routes.service_requests import pro_router as pro_requests_router
    from homepro.app.routes.service_requests import router as requests_router
    from homepro.app.routes.submissions import pending_router
    from homepro.app.routes.submissions import pro_router as pro_records_router
    from homepro.app.routes.submissions import router as submissions_router
    from homepro.infra.database import get_db

    test_app = FastAPI()
    install_error_handlers(test_app)
    for router in (
        auth_router,
        homes_router,
        connections_router,
        requests_router,
        pro_requests_router,
        submissions_router,
        pending_router,
        pro_records_router,
    ):
        test_app.include_router(router)

    async def _override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = _override_get_db

    return AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://testserver",
    )


def _auth(user_id: str, role: UserRole) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role.value)}"}


def _ids(household) -> dict:
    """Plain ids, safe to use after a request rolls the shared session back."""
    return {
        "owner": household["owner"].id,
        "contractor": household["contractor"].id,
        "home": household["home"].id,
        "connection": household["connection"].id,
    }


class TestFullLifecycle:
    async def test_request_quote_accept_document_approve(self, db_session, household):
        ids = _ids(household)
        owner = _auth(ids["owner"], UserRole.HOMEOWNER)
        pro = _auth(ids["contractor"], UserRole.CONTRACTOR)
        base = f"/api/homes/{ids['home']}/service-requests"

        async with _build_app_client(db_session) as client:
            resp = await client.post(
                base,
                headers=owner,
                json={
                    "connection_id": ids["connection"],
                    "contractor_id": ids["contractor"],
                    "title": "Replace water heater",
                    "description": "Tank is leaking at the base",
                    "urgency": "HIGH",
                    "budget_max": "1500",
                },
            )
            assert resp.status_code == 201
            request_id = resp.json()["id"]
            assert resp.json()["status"] == "PENDING"

            resp = await client.get("/api/pro/service-requests/pending-count", headers=pro)
            assert resp.json() == {"count": 1}

            resp = await client.post(
                f"/api/pro/service-requests/{request_id}/quote",
                headers=pro,
                json={"items": [
                    {"description": "50 gal heater", "unit_price": "900.00"},
                    {"description": "Install labor", "qty": "3", "unit_price": "100.00"},
                ]},
            )
            assert resp.status_code == 200
            data = resp.json()
            assert data["status"] == "QUOTED"
            assert Decimal(data["quote"]["total_amount"]) == Decimal("1200.00")
            assert len(data["quote"]["items"]) == 2

            resp = await client.patch(f"{base}/{request_id}", headers=owner, json={"action": "accept"})
            assert resp.status_code == 200
            assert resp.json()["status"] == "ACCEPTED"
            assert resp.json()["quote"]["status"] == "ACCEPTED"

            resp = await client.post(
                "/api/pro/service-records",
                headers=pro,
                json={
                    "home_id": ids["home"],
                    "service_type": "Water heater replacement",
                    "service_date": "2026-06-02",
                    "cost": "1200.00",
                    "service_request_id": request_id,
                    "attachments": [{"key": "receipts/heater.pdf", "mime_type": "application/pdf"}],
                },
            )
            assert resp.status_code == 201
            record = resp.json()
            assert record["status"] == "DOCUMENTED_UNVERIFIED"
            assert record["is_verified"] is False

            resp = await client.get("/api/submissions/pending-count", headers=owner)
            assert resp.json() == {"count": 1}

            resp = await client.get(f"/api/homes/{ids['home']}/submissions", headers=owner)
            assert [r["id"] for r in resp.json()] == [record["id"]]

            resp = await client.post(
                f"/api/homes/{ids['home']}/submissions/{record['id']}/approve", headers=owner
            )
            assert resp.status_code == 200
            approved = resp.json()
            assert approved["status"] == "APPROVED"
            assert approved["final_record_id"] is not None
            assert approved["attachments"][0]["record_id"] == approved["final_record_id"]

            resp = await client.get(f"{base}/{request_id}", headers=owner)
            assert resp.json()["status"] == ServiceRequestStatus.COMPLETED.value

            resp = await client.get(f"/api/homes/{ids['home']}/connections", headers=owner)
            connection = resp.json()[0]
            assert connection["verified_work_count"] == 1
            assert Decimal(connection["total_spent"]) == Decimal("1200.00")

            resp = await client.get(f"{base}/{request_id}/timeline", headers=owner)
            event_types = [e["event_type"] for e in resp.json()]
            assert event_types[0] == "request_created"
            assert "work_approved" in event_types
            assert event_types[-1] == "request_completed"


class TestErrorResponses:
    async def test_invalid_transition_is_409(self, db_session, household):
        ids = _ids(household)
        owner = _auth(ids["owner"], UserRole.HOMEOWNER)
        base = f"/api/homes/{ids['home']}/service-requests"

        async with _build_app_client(db_session) as client:
            resp = await client.post(
                base,
                headers=owner,
                json={
                    "connection_id": ids["connection"],
                    "contractor_id": ids["contractor"],
                    "title": "Paint fence",
                    "description": "Two coats",
                },
            )
            request_id = resp.json()["id"]

            resp = await client.patch(
                f"{base}/{request_id}", headers=owner, json={"action": "cancel", "reason": "Sold the house"}
            )
            assert resp.json()["status"] == "CANCELLED"

            resp = await client.patch(f"{base}/{request_id}", headers=owner, json={"action": "accept"})
            assert resp.status_code == 409
            assert "cannot accept from CANCELLED" in resp.json()["error"]

            resp = await client.delete(f"{base}/{request_id}", headers=owner)
            assert resp.status_code == 204

            resp = await client.get(f"{base}/{request_id}", headers=owner)
            assert resp.status_code == 404
            assert resp.json() == {"error": "Service request not found"}

    async def test_refused_action_keeps_edits_out(self, db_session, household, make_service_request):
        ids = _ids(household)
        request = await make_service_request(household["connection"])
        request_id, original_title = request.id, request.title
        await db_session.commit()
        owner = _auth(ids["owner"], UserRole.HOMEOWNER)
        url = f"/api/homes/{ids['home']}/service-requests/{request_id}"

        async with _build_app_client(db_session) as client:
            resp = await client.patch(url, headers=owner, json={"title": "Changed title", "action": "accept"})
            assert resp.status_code == 409

            resp = await client.get(url, headers=owner)
            assert resp.json()["title"] == original_title
            assert resp.json()["status"] == "PENDING"

            resp = await client.patch(
                url, headers=owner, json={"title": "Changed title", "action": "cancel", "reason": "Fixed it myself"}
            )
            assert resp.status_code == 200
            assert resp.json()["title"] == "Changed title"
            assert resp.json()["status"] == "CANCELLED"

    async def test_zero_quote_is_412(self, db_session, household, make_service_request):
        ids = _ids(household)
        request = await make_service_request(household["connection"])
        request_id = request.id

        async with _build_app_client(db_session) as client:
            resp = await client.post(
                f"/api/pro/service-requests/{request_id}/quote",
                headers=_auth(ids["contractor"], UserRole.CONTRACTOR),
                json={"total_amount": "0"},
            )
        assert resp.status_code == 412
        assert resp.json() == {"error": "Quote total must be greater than zero"}

    async def test_wrong_role_is_403(self, db_session, household):
        ids = _ids(household)
        async with _build_app_client(db_session) as client:
            resp = await client.get(
                f"/api/homes/{ids['home']}/service-requests",
                headers=_auth(ids["contractor"], UserRole.CONTRACTOR),
            )
        assert resp.status_code == 403
        assert resp.json() == {"error": "Insufficient permissions"}

    async def test_homeowner_decline_is_403(
        self, db_session, household, make_service_request
    ):
        ids = _ids(household)
        request = await make_service_request(household["connection"], ServiceRequestStatus.QUOTED)
        request_id = request.id

        async with _build_app_client(db_session) as client:
            resp = await client.patch(
                f"/api/homes/{ids['home']}/service-requests/{request_id}",
                headers=_auth(ids["owner"], UserRole.HOMEOWNER),
                json={"action": "decline"},
            )
        assert resp.status_code == 403
        assert "error" in resp.json()

    async def test_missing_token_is_401(self, db_session, household):
        ids = _ids(household)
        async with _build_app_client(db_session) as client:
            resp = await client.get(f"/api/homes/{ids['home']}/service-requests")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Missing or invalid token"}

    async def test_budget_range_validation_is_422(self, db_session, household):
        ids = _ids(household)
        async with _build_app_client(db_session) as client:
            resp = await client.post(
                f"/api/homes/{ids['home']}/service-requests",
                headers=_auth(ids["owner"], UserRole.HOMEOWNER),
                json={
                    "connection_id": ids["connection"],
                    "contractor_id": ids["contractor"],
                    "title": "Roof",
                    "description": "Leak",
                    "budget_min": "500",
                    "budget_max": "100",
                },
            )
        assert resp.status_code == 422


class TestSubmissionDecisions:
    async def test_reject_and_dispute_endpoints(self, db_session, household, make_submission):
        ids = _ids(household)
        first = await make_submission(household["home"], household["contractor"])
        second = await make_submission(household["home"], household["contractor"])
        first_id, second_id = first.id, second.id
        owner = _auth(ids["owner"], UserRole.HOMEOWNER)
        base = f"/api/homes/{ids['home']}/submissions"

        async with _build_app_client(db_session) as client:
            resp = await client.post(f"{base}/{first_id}/reject", headers=owner, json={"reason": "Not my house"})
            assert resp.status_code == 200
            assert resp.json()["status"] == "REJECTED"
            assert resp.json()["rejection_reason"] == "Not my house"

            resp = await client.post(f"{base}/{first_id}/approve", headers=owner)
            assert resp.status_code == 412
            assert resp.json()["error"] == f"Submission {first_id} is already REJECTED"

            resp = await client.patch(
                f"{base}/{second_id}", headers=owner, json={"action": "dispute", "reason": "Missing invoice"}
            )
            assert resp.status_code == 200
            assert resp.json()["status"] == "DISPUTED"

            resp = await client.get("/api/submissions/pending-count", headers=owner)
            assert resp.json() == {"count": 1}

    async def test_contractor_lists_own_records(self, db_session, household, make_submission):
        ids = _ids(household)
        await make_submission(household["home"], household["contractor"])

        async with _build_app_client(db_session) as client:
            resp = await client.get(
                "/api/pro/service-records", headers=_auth(ids["contractor"], UserRole.CONTRACTOR)
            )
        assert resp.status_code == 200
        assert len(resp.json()) == 1
        assert resp.json()[0]["status"] == "PENDING_REVIEW"


class TestHomesAndConnections:
    async def test_home_and_connection_flow(self, db_session, make_user):
        owner_user = await make_user(UserRole.HOMEOWNER)
        contractor_user = await make_user(UserRole.CONTRACTOR, email="pro@fixit.test")
        owner = _auth(owner_user.id, UserRole.HOMEOWNER)

        async with _build_app_client(db_session) as client:
            resp = await client.post(
                "/api/homes",
                headers=owner,
                json={"address": "9 Oak Ave", "city": "Denver", "state": "CO", "zip": "80202"},
            )
            assert resp.status_code == 201
            home_id = resp.json()["id"]

            resp = await client.post(
                f"/api/homes/{home_id}/connections",
                headers=owner,
                json={"contractor_email": "PRO@fixit.test"},
            )
            assert resp.status_code == 201
            connection = resp.json()
            assert connection["contractor_id"] == contractor_user.id
            assert connection["established_via"] == "INVITATION"
            assert connection["verified_work_count"] == 0

            resp = await client.get(
                "/api/connections", headers=_auth(contractor_user.id, UserRole.CONTRACTOR)
            )
            assert [c["id"] for c in resp.json()] == [connection["id"]]

            resp = await client.post(f"/api/connections/{connection['id']}/archive", headers=owner)
            assert resp.json()["status"] == "ARCHIVED"

            resp = await client.get(f"/api/homes/{home_id}/connections", headers=owner)
            assert resp.json() == []

            resp = await client.post(f"/api/connections/{connection['id']}/restore", headers=owner)
            assert resp.status_code == 200
            assert resp.json()["status"] == "ACTIVE"

            resp = await client.post(
                f"/api/homes/{home_id}/connections",
                headers=owner,
                json={"contractor_id": contractor_user.id},
            )
            assert resp.json()["id"] == connection["id"]
