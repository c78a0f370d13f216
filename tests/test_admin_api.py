from datetime import timedelta

from sqlalchemy import func, select, update

from bikefine.core.constants import ViolationType
from bikefine.models.admin import AdminSession
from bikefine.models.case import Case
from bikefine.services import admin_service, case_service, query_service
from bikefine.utils.dates import utcnow

SPEEDING_BY_PLATE = {
    "numberPlate": "ABC123",
    "violationType": "speeding",
    "fine": 50,
    "proofUrl": "/x.jpg",
}


async def count_cases(database):
    async with database.session() as session:
        result = await session.execute(select(func.count(Case.id)))
        return result.scalar()


async def make_case(db, user_id, **overrides):
    data = {"userId": user_id, "violationType": "speeding", "fine": 50, "proofUrl": "/p.jpg"}
    data.update(overrides)
    return await case_service.create_case(db, data)


class TestAdminAuth:
    async def test_login_returns_session(self, client, admin):
        response = await client.post("/api/admin/auth", json={
            "email": "admin@bikeviolation.gov", "password": "admin12345",
        })
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["admin"]["email"] == "admin@bikeviolation.gov"
        assert data["session"]["token"].startswith("admin_token_")
        assert "passwordHash" not in data["admin"]
        assert "admin_session" in response.cookies

    async def test_bad_credentials(self, client, admin):
        response = await client.post("/api/admin/auth", json={
            "email": "admin@bikeviolation.gov", "password": "wrong",
        })
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid credentials"}

    async def test_missing_credentials(self, client):
        response = await client.post("/api/admin/auth", json={"email": "admin@bikeviolation.gov"})
        assert response.status_code == 400

    async def test_validate(self, client, admin_token):
        response = await client.post("/api/admin/validate", json={"token": admin_token})
        assert response.status_code == 200
        assert response.json()["data"]["admin"]["role"] == "super_admin"

        response = await client.post("/api/admin/validate", json={"token": "admin_token_bogus"})
        assert response.status_code == 401

    async def test_expired_session_rejected(self, client, database, admin_token, admin_headers):
        async with database.session() as session:
            await session.execute(
                update(AdminSession)
                .where(AdminSession.token == admin_token)
                .values(expires_at=utcnow() - timedelta(minutes=5))
            )
            await session.commit()

        response = await client.get("/api/admin/violations", headers=admin_headers)
        assert response.status_code == 401
        assert response.json()["success"] is False

        response = await client.post("/api/admin/validate", json={"token": admin_token})
        assert response.status_code == 401

    async def test_logout(self, client, admin_token):
        response = await client.delete("/api/admin/auth", params={"token": admin_token})
        assert response.status_code == 200

        response = await client.delete("/api/admin/auth", params={"token": admin_token})
        assert response.status_code == 404

        response = await client.post("/api/admin/validate", json={"token": admin_token})
        assert response.status_code == 401

    async def test_requires_token(self, client):
        response = await client.get("/api/admin/violations")
        assert response.status_code == 401

    async def test_missing_permission(self, client, db, admin):
        await admin_service.create_admin(db, {
            "email": "viewer@bikeviolation.gov",
            "password": "viewer1",
            "firstName": "Read",
            "lastName": "Only",
            "role": "support",
            "permissions": [{"resource": "violations", "actions": ["view"]}],
        })
        login = await client.post("/api/admin/auth", json={
            "email": "viewer@bikeviolation.gov", "password": "viewer1",
        })
        headers = {"Authorization": f"Bearer {login.json()['data']['session']['token']}"}

        response = await client.get("/api/admin/violations", headers=headers)
        assert response.status_code == 200

        response = await client.post("/api/admin/violations", json=SPEEDING_BY_PLATE, headers=headers)
        assert response.status_code == 403

    async def test_activity_log(self, client, admin_headers):
        response = await client.get("/api/admin/activities", headers=admin_headers)
        actions = [activity["action"] for activity in response.json()["data"]]
        assert "login" in actions

    async def test_list_admins(self, client, admin_headers):
        response = await client.get("/api/admin/admins", headers=admin_headers)
        assert [admin["email"] for admin in response.json()["data"]] == ["admin@bikeviolation.gov"]


class TestAdminViolations:
    async def test_file_by_plate_creates_companion_query(self, client, rider, admin_headers):
        response = await client.post("/api/admin/violations", json=SPEEDING_BY_PLATE, headers=admin_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Violation case created successfully"

        case = body["data"]
        assert case["userId"] == rider.id
        assert case["status"] == "pending"
        assert case["dueDate"] is not None

        response = await client.get("/api/queries", params={"caseId": case["id"]})
        queries = response.json()["data"]["data"]
        assert len(queries) == 1
        assert queries[0]["userId"] == rider.id
        assert queries[0]["priority"] == "high"
        assert queries[0]["category"] == "violation_dispute"

    async def test_unknown_plate_files_nothing(self, client, database, admin_headers):
        response = await client.post(
            "/api/admin/violations",
            json={**SPEEDING_BY_PLATE, "numberPlate": "NOPE-1"},
            headers=admin_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "No user found for number plate NOPE-1"
        assert await count_cases(database) == 0

    async def test_missing_proof(self, client, rider, admin_headers):
        response = await client.post(
            "/api/admin/violations",
            json={"userId": rider.id, "violationType": "speeding", "fine": 50},
            headers=admin_headers,
        )
        assert response.status_code == 400

    async def test_list_enriches_with_rider(self, client, db, rider, admin_headers):
        await make_case(db, rider.id)
        # Owner deleted after filing
        db.add(Case(
            user_id="user-gone",
            violation_type=ViolationType.PARKING,
            violation="Illegal parking",
            fine=15,
            proof_url="/p.jpg",
            location="Market Street",
            date=utcnow(),
        ))
        await db.commit()

        response = await client.get("/api/admin/violations", headers=admin_headers)
        cases = {case["userId"]: case for case in response.json()["data"]["data"]}
        assert cases[rider.id]["userName"] == "Ama Mensah"
        assert cases[rider.id]["numberPlate"] == "ABC123"
        assert cases["user-gone"]["userName"] == "Unknown User"
        assert cases["user-gone"]["numberPlate"] == "N/A"

    async def test_filing_survives_companion_query_failure(self, client, rider, admin_headers, monkeypatch):
        async def inbox_down(*args, **kwargs):
            raise RuntimeError("inbox down")

        monkeypatch.setattr(query_service, "create_query", inbox_down)
        response = await client.post("/api/admin/violations", json=SPEEDING_BY_PLATE, headers=admin_headers)
        assert response.status_code == 201
        case_id = response.json()["data"]["id"]

        response = await client.get("/api/cases")
        assert [case["id"] for case in response.json()["data"]["data"]] == [case_id]
        response = await client.get("/api/queries")
        assert response.json()["data"]["total"] == 0


class TestAdminUsers:
    async def test_list_includes_totals(self, client, db, rider, admin_headers):
        await make_case(db, rider.id, fine=30)
        await make_case(db, rider.id, fine=70, status="paid")

        response = await client.get("/api/admin/users", headers=admin_headers)
        user = response.json()["data"]["data"][0]
        assert user["violationCount"] == 2
        assert user["totalFines"] == 100
        assert user["outstandingFines"] == 30
        assert user["hasOutstandingFines"] is True

        response = await client.get("/api/admin/users", params={"hasViolations": "false"}, headers=admin_headers)
        assert response.json()["data"]["total"] == 0

    async def test_search(self, client, rider, admin_headers):
        response = await client.get("/api/admin/users/search", params={"numberPlate": "abc123"}, headers=admin_headers)
        assert [user["id"] for user in response.json()["data"]] == [rider.id]

        response = await client.get("/api/admin/users/search", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Number plate or search term is required"

    async def test_stats(self, client, rider, admin_headers):
        response = await client.get("/api/admin/users/stats", headers=admin_headers)
        data = response.json()["data"]
        assert data["overview"]["totalUsers"] == 1
        assert data["numberPlates"]["usersWithNumberPlates"] == 1
        assert len(data["registration"]["monthlyRegistrations"]) == 12

    async def test_details(self, client, db, rider, admin_headers):
        await make_case(db, rider.id, fine=25, status="paid")

        response = await client.get(f"/api/admin/users/{rider.id}", headers=admin_headers)
        user = response.json()["data"]["user"]
        assert user["paidFines"] == 25
        assert user["violationsByStatus"] == {"paid": 1}
        assert len(user["recentViolations"]) == 1

        response = await client.get("/api/admin/users/user-missing", headers=admin_headers)
        assert response.status_code == 404

    async def test_suspend_then_activate(self, client, rider, admin_headers):
        response = await client.put(
            f"/api/admin/users/{rider.id}",
            json={"action": "suspend", "reason": "Repeated offences"},
            headers=admin_headers,
        )
        assert response.json()["data"]["status"] == "suspended"
        assert response.json()["data"]["suspendedReason"] == "Repeated offences"

        response = await client.put(f"/api/admin/users/{rider.id}", json={"action": "activate"}, headers=admin_headers)
        assert response.json()["data"]["status"] == "active"
        assert response.json()["data"]["isActive"] is True

    async def test_bulk_verify_email(self, client, rider, admin_headers):
        response = await client.put(
            "/api/admin/users",
            json={"userIds": [rider.id], "action": "verifyEmail"},
            headers=admin_headers,
        )
        assert response.json()["data"] == {"matchedCount": 1, "modifiedCount": 1}

        response = await client.get(f"/api/users/{rider.id}")
        assert response.json()["data"]["emailVerified"] is True

    async def test_delete_blocked_then_allowed(self, client, db, rider, admin_headers):
        case = await make_case(db, rider.id)

        response = await client.delete(f"/api/admin/users/{rider.id}", headers=admin_headers)
        assert response.status_code == 400

        await case_service.update_case(db, case.id, {"status": "resolved"})
        response = await client.delete(f"/api/admin/users/{rider.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["deletedCases"] == 1


class TestAdminUploads:
    async def test_attach_image_to_case(self, client, db, rider, admin_headers):
        case = await make_case(db, rider.id)

        response = await client.post(
            "/api/admin/cases/attach",
            data={"caseId": case.id},
            files={"file": ("proof.png", b"\x89PNG small", "image/png")},
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["url"].startswith("/uploads/images/")
        assert data["url"].endswith(".png")
        assert data["case"]["evidenceUrls"] == [data["url"]]

        served = await client.get(data["url"])
        assert served.status_code == 200
        assert served.content == b"\x89PNG small"

    async def test_pdf_rejected(self, client, db, rider, admin_headers):
        case = await make_case(db, rider.id)
        response = await client.post(
            "/api/admin/cases/attach",
            data={"caseId": case.id},
            files={"file": ("ticket.pdf", b"%PDF-1.4", "application/pdf")},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid file type")

    async def test_unknown_case(self, client, admin_headers):
        response = await client.post(
            "/api/admin/cases/attach",
            data={"caseId": "case-missing"},
            files={"file": ("proof.png", b"\x89PNG", "image/png")},
            headers=admin_headers,
        )
        assert response.status_code == 404

    async def test_case_id_required(self, client, admin_headers):
        response = await client.post(
            "/api/admin/cases/attach",
            files={"file": ("proof.png", b"\x89PNG", "image/png")},
            headers=admin_headers,
        )
        assert response.status_code == 400

    async def test_query_attachment(self, client, rider, admin_headers):
        response = await client.post("/api/queries", json={
            "userId": rider.id,
            "subject": "Photo of my helmet",
            "message": "Attaching a photo that shows I wore a helmet.",
            "category": "violation_dispute",
        })
        query_id = response.json()["data"]["id"]

        response = await client.post(
            "/api/admin/queries/attachments",
            data={"queryId": query_id},
            files={"file": ("helmet.jpg", b"\xff\xd8\xff jpeg", "image/jpeg")},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["data"]["queryId"] == query_id

        response = await client.get(f"/api/queries/{query_id}")
        query = response.json()["data"]
        assert query["hasAttachments"] is True
        assert len(query["attachments"]) == 1

    async def test_unknown_query_leaves_no_file(self, client, tmp_path, admin_headers):
        response = await client.post(
            "/api/admin/queries/attachments",
            data={"queryId": "query-missing"},
            files={"file": ("helmet.jpg", b"\xff\xd8\xff jpeg", "image/jpeg")},
            headers=admin_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "Query not found"
        assert not list((tmp_path / "public").rglob("*.jpg"))

    async def test_unknown_response_leaves_no_file(self, client, tmp_path, admin_headers):
        response = await client.post(
            "/api/admin/queries/attachments",
            data={"responseId": "response-missing"},
            files={"file": ("helmet.jpg", b"\xff\xd8\xff jpeg", "image/jpeg")},
            headers=admin_headers,
        )
        assert response.status_code == 404
        assert not list((tmp_path / "public").rglob("*.jpg"))

    async def test_failed_attach_discards_file(self, client, db, tmp_path, rider, admin_headers, monkeypatch):
        case = await make_case(db, rider.id)

        async def database_down(*args, **kwargs):
            raise RuntimeError("database down")

        monkeypatch.setattr(case_service, "attach_evidence", database_down)
        response = await client.post(
            "/api/admin/cases/attach",
            data={"caseId": case.id},
            files={"file": ("proof.png", b"\x89PNG small", "image/png")},
            headers=admin_headers,
        )
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to upload file"
        assert not list((tmp_path / "public").rglob("*.png"))
