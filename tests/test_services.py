from datetime import timedelta

import pytest
from sqlalchemy import func, select

from bikefine.core.constants import CaseStatus, PaymentStatus, QueryStatus, UserStatus, ViolationType
from bikefine.core.exceptions import DuplicateRecordError, RecordNotFoundError, RecordValidationError
from bikefine.models.admin import AdminActivity
from bikefine.models.case import Case
from bikefine.models.query import UserQuery
from bikefine.schemas.case import ViolationCreate
from bikefine.schemas.filters import CaseFilters, UserFilters
from bikefine.schemas.payment import PaymentCreate
from bikefine.schemas.query import QueryResponseCreate
from bikefine.schemas.user import BulkUserUpdate
from bikefine.services import (
    admin_service,
    case_service,
    payment_service,
    query_service,
    user_management,
    user_service,
)
from bikefine.services.notification_service import notification_service
from bikefine.utils.dates import utcnow


async def make_case(db, user_id, **overrides):
    data = {
        "userId": user_id,
        "violationType": "speeding",
        "fine": 50,
        "proofUrl": "/uploads/images/proof.jpg",
        "location": "Ring Road",
    }
    data.update(overrides)
    return await case_service.create_case(db, data)


async def count_rows(database, model):
    async with database.session() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar()


class TestUserService:
    async def test_create_user_normalizes_email_and_plate(self, rider):
        assert rider.email == "ama@example.com"
        assert rider.number_plate == "ABC123"
        assert rider.password_hash != "secret123"
        assert rider.status == UserStatus.ACTIVE

    async def test_duplicate_plate_rejected(self, db, rider):
        with pytest.raises(DuplicateRecordError):
            await user_service.create_user(db, {
                "name": "Kofi Boateng",
                "email": "kofi@example.com",
                "password": "secret123",
                "numberPlate": "ABC123",
            })

    async def test_short_name_rejected(self, db):
        with pytest.raises(RecordValidationError) as exc:
            await user_service.create_user(db, {"name": "A", "email": "a@example.com", "password": "secret123"})
        assert exc.value.field == "name"

    async def test_authenticate_user(self, db, rider):
        assert await user_service.authenticate_user(db, "AMA@example.com", "secret123") is not None
        assert await user_service.authenticate_user(db, "ama@example.com", "wrong-password") is None

    async def test_update_unknown_user_returns_none(self, db):
        assert await user_service.update_user(db, "user-missing", {"name": "Nobody"}) is None

    async def test_list_users_second_page(self, db):
        for i in range(15):
            await user_service.create_user(db, {
                "name": f"Rider {i}",
                "email": f"rider{i}@example.com",
                "password": "secret123",
            })

        result = await user_service.list_users(db, UserFilters(), page=2, limit=10)
        assert len(result["data"]) == 5
        assert result["total"] == 15
        assert result["totalPages"] == 2

    async def test_search_filter_matches_plate(self, db, rider):
        result = await user_service.list_users(db, UserFilters(search="abc"), page=1, limit=10)
        assert [user.id for user in result["data"]] == [rider.id]


class TestCaseService:
    async def test_create_case_fills_defaults(self, db, rider):
        case = await case_service.create_case(db, {
            "userId": rider.id,
            "violationType": "traffic_light",
            "fine": 75,
            "proofUrl": "/x.jpg",
        })
        assert case.violation == "Failed to stop at red light"
        assert case.location == "Not specified"
        assert case.status == CaseStatus.PENDING
        assert case.date is not None

    async def test_create_case_for_unknown_user(self, db):
        with pytest.raises(RecordNotFoundError):
            await make_case(db, "user-missing")

    async def test_fine_must_be_positive(self, db, rider):
        with pytest.raises(RecordValidationError):
            await make_case(db, rider.id, fine=0)

    async def test_status_change_stamps_timestamp(self, db, rider):
        case = await make_case(db, rider.id)
        updated = await case_service.update_case(db, case.id, {"status": "disputed"})
        assert updated.status == CaseStatus.DISPUTED
        assert updated.disputed_at is not None
        assert updated.paid_at is None

    async def test_file_violation_resolves_plate(self, db, rider):
        case = await case_service.file_violation(db, ViolationCreate(
            user_id="user-does-not-exist",
            number_plate="abc123",
            violation_type=ViolationType.SPEEDING,
            fine=50,
            proof_url="/x.jpg",
        ))
        assert case.user_id == rider.id
        assert case.due_date - case.date > timedelta(days=29)

    async def test_file_violation_unknown_plate(self, db, database):
        with pytest.raises(RecordNotFoundError) as exc:
            await case_service.file_violation(db, ViolationCreate(
                number_plate="ZZZ999",
                violation_type=ViolationType.SPEEDING,
                fine=50,
                proof_url="/x.jpg",
            ))
        assert "ZZZ999" in exc.value.message
        assert await count_rows(database, Case) == 0

    async def test_file_violation_requires_proof(self, db, rider):
        with pytest.raises(RecordValidationError):
            await case_service.file_violation(db, ViolationCreate(
                user_id=rider.id,
                violation_type=ViolationType.SPEEDING,
                fine=50,
            ))

    async def test_list_cases_filters(self, db, rider):
        await make_case(db, rider.id, fine=20)
        await make_case(db, rider.id, fine=200, status="paid")

        unpaid = await case_service.list_cases(db, CaseFilters(is_paid=False))
        assert unpaid["total"] == 1
        expensive = await case_service.list_cases(db, CaseFilters(min_fine=100))
        assert [case.fine for case in expensive["data"]] == [200]

    async def test_attach_evidence_appends_url(self, db, rider):
        case = await make_case(db, rider.id)
        updated = await case_service.attach_evidence(db, case.id, "/uploads/images/a.png")
        assert updated.evidence_urls == ["/uploads/images/a.png"]
        assert updated.proof_url == "/uploads/images/proof.jpg"

        with pytest.raises(RecordNotFoundError):
            await case_service.attach_evidence(db, "case-missing", "/uploads/images/a.png")


class TestQueryService:
    async def test_companion_query_for_filed_case(self, db, rider):
        case = await make_case(db, rider.id)
        query = await notification_service.notify_case_filed(db, case)

        assert query.case_id == case.id
        assert query.user_id == rider.id
        assert case.id in query.message

    async def test_companion_query_failure_keeps_case(self, db, database, rider, monkeypatch):
        case = await make_case(db, rider.id)

        async def inbox_down(*args, **kwargs):
            raise RuntimeError("inbox down")

        monkeypatch.setattr(query_service, "create_query", inbox_down)
        assert await notification_service.notify_case_filed(db, case) is None

        assert await count_rows(database, Case) == 1
        assert await count_rows(database, UserQuery) == 0

    async def test_response_moves_query_along(self, db, rider):
        query = await query_service.create_query(db, {
            "userId": rider.id,
            "subject": "Wrong plate recorded",
            "message": "<p>The plate on this fine is <b>not mine</b>.</p>",
            "category": "violation_dispute",
        })
        assert query.message == "The plate on this fine is not mine ."

        await query_service.create_response(db, QueryResponseCreate(query_id=query.id, message="We are checking."))
        refreshed = await query_service.get_query_by_id(db, query.id)
        assert refreshed.status == QueryStatus.IN_PROGRESS
        assert refreshed.last_response_at is not None

        await query_service.create_response(db, QueryResponseCreate(
            query_id=query.id, message="Fine cancelled.", mark_as_resolved=True
        ))
        responses = await query_service.get_responses(db, query.id)
        assert [response.message for response in responses] == ["We are checking.", "Fine cancelled."]
        assert (await query_service.get_query_by_id(db, query.id)).status == QueryStatus.RESOLVED

    async def test_response_requires_message(self, db):
        with pytest.raises(RecordValidationError):
            await query_service.create_response(db, QueryResponseCreate(query_id="query-1"))

    async def test_response_to_unknown_query(self, db):
        with pytest.raises(RecordNotFoundError):
            await query_service.create_response(db, QueryResponseCreate(query_id="query-missing", message="Hello there"))

    async def test_delete_query_removes_responses(self, db, database, rider):
        query = await query_service.create_query(db, {
            "userId": rider.id,
            "subject": "Payment question",
            "message": "How do I pay this fine online?",
            "category": "payment_issues",
        })
        await query_service.create_response(db, QueryResponseCreate(query_id=query.id, message="Use the portal."))

        assert await query_service.delete_query(db, query.id)
        assert await count_rows(database, UserQuery) == 0


class TestPaymentService:
    async def test_payment_marks_case_paid(self, db, rider):
        case = await make_case(db, rider.id)
        payment, updated = await payment_service.create_payment(db, PaymentCreate(case_id=case.id, amount="50"))

        assert payment.amount == 50
        assert payment.transaction_id.startswith("bank-")
        assert updated.status == CaseStatus.PAID
        assert updated.paid_at is not None

    @pytest.mark.parametrize("amount", [None, "", "abc", -5, 0])
    async def test_invalid_amount(self, db, amount):
        with pytest.raises(RecordValidationError):
            await payment_service.create_payment(db, PaymentCreate(case_id="case-1", amount=amount))

    async def test_unknown_case(self, db):
        with pytest.raises(RecordNotFoundError):
            await payment_service.create_payment(db, PaymentCreate(case_id="case-missing", amount=10))

    async def test_refund_then_delete(self, db, rider):
        case = await make_case(db, rider.id)
        payment, _ = await payment_service.create_payment(db, PaymentCreate(case_id=case.id, amount=50))

        refunded = await payment_service.update_payment_status(db, payment.id, PaymentStatus.REFUNDED)
        assert refunded.status == PaymentStatus.REFUNDED
        assert refunded.paid_at is not None

        assert await payment_service.delete_payment(db, payment.id) is True
        assert await payment_service.get_payment_by_id(db, payment.id) is None

    async def test_unknown_payment(self, db):
        assert await payment_service.update_payment_status(db, "payment-missing", PaymentStatus.FAILED) is None
        assert await payment_service.delete_payment(db, "payment-missing") is False


class TestUserManagement:
    async def test_totals_count_only_outstanding(self, db, rider):
        await make_case(db, rider.id, fine=30)
        await make_case(db, rider.id, fine=70, status="paid")

        totals = await user_management.violation_totals(db, [rider.id])
        assert totals[rider.id]["violation_count"] == 2
        assert totals[rider.id]["total_fines"] == 100
        assert totals[rider.id]["outstanding_fines"] == 30

    async def test_bulk_suspend(self, db, rider):
        counts = await user_management.bulk_update_users(db, BulkUserUpdate(
            user_ids=[rider.id, "user-missing"], action="suspend", reason="Unpaid fines"
        ), admin_id="admin-1")
        assert counts == {"matchedCount": 1, "modifiedCount": 1}

        user = await user_service.get_user_by_id(db, rider.id)
        assert user.status == UserStatus.SUSPENDED
        assert user.is_active is False
        assert user.suspended_by == "admin-1"

    async def test_bulk_rejects_unknown_action(self, db, rider):
        with pytest.raises(RecordValidationError):
            await user_management.bulk_update_users(db, BulkUserUpdate(user_ids=[rider.id], action="explode"))

    async def test_delete_blocked_by_outstanding_case(self, db, rider):
        await make_case(db, rider.id)
        with pytest.raises(RecordValidationError):
            await user_management.delete_user_as_admin(db, rider.id)

    async def test_delete_removes_settled_cases(self, db, database, rider):
        await make_case(db, rider.id, status="paid")
        await make_case(db, rider.id, status="resolved")

        assert await user_management.delete_user_as_admin(db, rider.id) == 2
        assert await count_rows(database, Case) == 0


class TestAdminSessions:
    async def test_expired_session_is_rejected(self, db, admin):
        session = await admin_service.create_session(db, admin.id, "admin_token_test")
        assert await admin_service.validate_session(db, "admin_token_test") is not None

        session.expires_at = utcnow() - timedelta(minutes=1)
        await db.commit()

        assert await admin_service.validate_session(db, "admin_token_test") is None
        # The row is still there and can be invalidated
        assert await admin_service.invalidate_session(db, "admin_token_test") is True
        assert await admin_service.invalidate_session(db, "admin_token_test") is False

    async def test_authenticate_admin(self, db, admin):
        assert await admin_service.authenticate(db, "admin@bikeviolation.gov", "admin12345") is not None
        assert await admin_service.authenticate(db, "admin@bikeviolation.gov", "nope") is None

    async def test_duplicate_admin(self, db, admin):
        with pytest.raises(DuplicateRecordError):
            await admin_service.create_admin(db, {
                "email": "ADMIN@bikeviolation.gov",
                "password": "another1",
                "firstName": "Second",
                "lastName": "Admin",
            })

    async def test_permissions(self, db, admin):
        officer = await admin_service.create_admin(db, {
            "email": "officer@bikeviolation.gov",
            "password": "officer1",
            "firstName": "Field",
            "lastName": "Officer",
            "permissions": [{"resource": "violations", "actions": ["view", "create"]}],
        })
        assert admin_service.has_permission(officer, "violations", "create")
        assert not admin_service.has_permission(officer, "violations", "delete")
        assert not admin_service.has_permission(officer, "users", "view")
        assert admin_service.has_permission(admin, "settings", "delete")

    async def test_update_admin(self, db, admin):
        updated = await admin_service.update_admin(db, admin.id, {"firstName": "Chief", "password": "rotated99"})
        assert updated.first_name == "Chief"
        assert await admin_service.authenticate(db, "admin@bikeviolation.gov", "rotated99") is not None
        assert await admin_service.authenticate(db, "admin@bikeviolation.gov", "admin12345") is None

        assert await admin_service.update_admin(db, "admin-missing", {"firstName": "Nobody"}) is None

    async def test_log_activity_swallows_failures(self, db, database, admin, monkeypatch):
        async def commit_fails():
            raise RuntimeError("disk full")

        monkeypatch.setattr(db, "commit", commit_fails)
        assert await admin_service.log_activity(db, admin_id=admin.id, action="login", resource="admin") is None
        monkeypatch.undo()

        assert await count_rows(database, AdminActivity) == 0
        assert await admin_service.log_activity(db, admin_id=admin.id, action="login", resource="admin") is not None
