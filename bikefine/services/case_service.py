import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.constants import (
    DEFAULT_DUE_DAYS,
    DEFAULT_LOCATION,
    DEFAULT_VIOLATION_DESCRIPTIONS,
    CaseStatus,
)
from bikefine.core.exceptions import RecordNotFoundError, RecordValidationError
from bikefine.models.case import Case
from bikefine.schemas.case import CaseCreate, CaseUpdate, ViolationCreate
from bikefine.schemas.filters import CaseFilters
from bikefine.services import user_service
from bikefine.services.base import DEFAULT_PAGE_SIZE, contains, paginate
from bikefine.utils.dates import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

# Status -> timestamp column stamped when a case moves into that status
STATUS_TIMESTAMPS = {
    CaseStatus.PAID: "paid_at",
    CaseStatus.DISPUTED: "disputed_at",
    CaseStatus.RESOLVED: "resolved_at",
}


def validate_case_data(data: Dict[str, Any], partial: bool = False) -> None:
    if not partial or "violation" in data:
        if len((data.get("violation") or "").strip()) < 5:
            raise RecordValidationError("Violation description must be at least 5 characters long", field="violation")

    if not partial or "fine" in data:
        fine = data.get("fine")
        if fine is None or fine <= 0:
            raise RecordValidationError("Fine amount must be greater than 0", field="fine")

    if not partial or "proof_url" in data:
        if not (data.get("proof_url") or "").strip():
            raise RecordValidationError("Proof URL is required", field="proof_url")

    if not partial or "location" in data:
        if len((data.get("location") or "").strip()) < 3:
            raise RecordValidationError("Location must be at least 3 characters long", field="location")

    if not partial or "date" in data:
        if data.get("date") is None:
            raise RecordValidationError("Valid date is required", field="date")


async def create_case(db: AsyncSession, data: Union[CaseCreate, Dict[str, Any]]) -> Case:
    if isinstance(data, dict):
        data = CaseCreate.model_validate(data)

    user = await user_service.get_user_by_id(db, data.user_id)
    if not user:
        raise RecordNotFoundError("User not found")

    fields = data.model_dump()
    if not (fields.get("violation") or "").strip():
        fields["violation"] = DEFAULT_VIOLATION_DESCRIPTIONS[data.violation_type]
    if fields.get("location") is None:
        fields["location"] = DEFAULT_LOCATION
    fields["date"] = to_naive_utc(fields.get("date")) or utcnow()
    fields["due_date"] = to_naive_utc(fields.get("due_date"))

    validate_case_data(fields)

    new_case = Case(**fields)
    timestamp_field = STATUS_TIMESTAMPS.get(new_case.status)
    if timestamp_field:
        setattr(new_case, timestamp_field, utcnow())

    db.add(new_case)
    await db.commit()
    await db.refresh(new_case)

    logger.info("Created case %s for user %s", new_case.id, new_case.user_id)
    return new_case


async def file_violation(db: AsyncSession, data: ViolationCreate) -> Case:
    """
    Create a case from the admin filing form.

    The owner is ``userId`` when it names an existing user, otherwise the
    user registered with ``numberPlate``.

    Raises:
        - RecordNotFoundError: No user matches the id or the plate.
        - RecordValidationError: A required field is missing or invalid.
    """
    user = await user_service.get_user_by_id(db, data.user_id) if data.user_id else None

    if not user and data.number_plate:
        user = await user_service.get_user_by_number_plate(db, data.number_plate)
        if not user:
            raise RecordNotFoundError(f"No user found for number plate {data.number_plate}")

    if not user and data.user_id:
        raise RecordNotFoundError("User not found")

    if not user or not data.violation_type or not data.proof_url:
        raise RecordValidationError("Missing required fields (userId|violationType|proofUrl)")

    return await create_case(db, CaseCreate(
        user_id=user.id,
        violation_type=data.violation_type,
        violation=data.description or data.violation,
        fine=data.fine,
        proof_url=data.proof_url,
        location=data.location,
        date=data.date_time or utcnow(),
        due_date=data.due_date or utcnow() + timedelta(days=DEFAULT_DUE_DAYS),
        officer_id=data.officer_id,
        evidence_urls=data.evidence_urls,
        vehicle_details=data.vehicle_details,
    ))


async def get_case_by_id(db: AsyncSession, case_id: str) -> Optional[Case]:
    return await db.get(Case, case_id)


async def update_case(db: AsyncSession, case_id: str, data: Union[CaseUpdate, Dict[str, Any]]) -> Optional[Case]:
    if isinstance(data, dict):
        data = CaseUpdate.model_validate(data)

    case = await db.get(Case, case_id)
    if not case:
        return None

    changes = data.model_dump(exclude_unset=True)
    for required in ("violation_type", "violation", "fine", "proof_url", "location", "date", "status", "evidence_urls"):
        if required in changes and changes[required] is None:
            changes.pop(required)
    for field in ("date", "due_date"):
        if field in changes:
            changes[field] = to_naive_utc(changes[field])

    validate_case_data(changes, partial=True)

    new_status = changes.get("status")
    if new_status is not None and new_status != case.status:
        timestamp_field = STATUS_TIMESTAMPS.get(new_status)
        if timestamp_field:
            changes[timestamp_field] = utcnow()

    for field, value in changes.items():
        setattr(case, field, value)
    case.updated_at = utcnow()

    await db.commit()
    await db.refresh(case)
    return case


async def delete_case(db: AsyncSession, case_id: str) -> bool:
    case = await db.get(Case, case_id)
    if not case:
        return False

    await db.delete(case)
    await db.commit()
    return True


def build_case_conditions(filters: CaseFilters) -> List:
    conditions = []

    if filters.user_id:
        conditions.append(Case.user_id == filters.user_id)
    if filters.violation_type is not None:
        conditions.append(Case.violation_type == filters.violation_type)
    if filters.status is not None:
        conditions.append(Case.status == filters.status)
    if filters.min_fine is not None:
        conditions.append(Case.fine >= filters.min_fine)
    if filters.max_fine is not None:
        conditions.append(Case.fine <= filters.max_fine)
    if filters.date_from:
        conditions.append(Case.date >= filters.date_from)
    if filters.date_to:
        conditions.append(Case.date <= filters.date_to)
    if filters.is_paid is not None:
        conditions.append(Case.status == CaseStatus.PAID if filters.is_paid else Case.status != CaseStatus.PAID)
    if filters.is_disputed is not None:
        conditions.append(
            Case.status == CaseStatus.DISPUTED if filters.is_disputed else Case.status != CaseStatus.DISPUTED
        )
    if filters.search:
        conditions.append(or_(
            contains(Case.violation, filters.search),
            contains(Case.location, filters.search),
        ))

    return conditions


async def list_cases(db: AsyncSession, filters: CaseFilters, page: int = 1, limit: int = DEFAULT_PAGE_SIZE):
    query = select(Case)
    conditions = build_case_conditions(filters)
    if conditions:
        query = query.where(and_(*conditions))

    query = query.order_by(Case.created_at.desc(), Case.id.desc())
    return await paginate(db, query, page, limit)


async def get_cases_for_user(db: AsyncSession, user_id: str, limit: int = 50) -> List[Case]:
    result = await db.execute(
        select(Case)
        .where(Case.user_id == user_id)
        .order_by(Case.created_at.desc(), Case.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def attach_evidence(db: AsyncSession, case_id: str, url: str) -> Case:
    """Append an uploaded file to a case, using it as the proof when there is none."""
    case = await db.get(Case, case_id)
    if not case:
        raise RecordNotFoundError("Case not found")

    # Reassign so the JSON column is flagged dirty
    case.evidence_urls = list(case.evidence_urls or []) + [url]
    if not case.proof_url:
        case.proof_url = url
    case.updated_at = utcnow()

    await db.commit()
    await db.refresh(case)
    return case
