from datetime import datetime
from typing import List, Optional

from bikefine.core.constants import CaseStatus, ViolationType
from bikefine.schemas.base import CamelModel


class VehicleDetails(CamelModel):
    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    year: Optional[int] = None


class CaseCreate(CamelModel):
    user_id: str
    violation_type: ViolationType
    violation: Optional[str] = None
    fine: float
    proof_url: Optional[str] = None
    location: Optional[str] = None
    date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    status: CaseStatus = CaseStatus.PENDING
    evidence_urls: List[str] = []
    admin_notes: Optional[str] = None
    officer_id: Optional[str] = None
    vehicle_details: Optional[VehicleDetails] = None


class ViolationCreate(CamelModel):
    """Admin filing form: the owner comes from ``userId`` or ``numberPlate``"""

    user_id: Optional[str] = None
    number_plate: Optional[str] = None
    violation_type: Optional[ViolationType] = None
    description: Optional[str] = None
    violation: Optional[str] = None
    fine: float = 0
    proof_url: Optional[str] = None
    location: Optional[str] = None
    date_time: Optional[datetime] = None
    due_date: Optional[datetime] = None
    officer_id: Optional[str] = None
    evidence_urls: List[str] = []
    vehicle_details: Optional[VehicleDetails] = None


class CaseUpdate(CamelModel):
    violation_type: Optional[ViolationType] = None
    violation: Optional[str] = None
    fine: Optional[float] = None
    proof_url: Optional[str] = None
    location: Optional[str] = None
    date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    status: Optional[CaseStatus] = None
    evidence_urls: Optional[List[str]] = None
    admin_notes: Optional[str] = None
    officer_id: Optional[str] = None
    vehicle_details: Optional[VehicleDetails] = None


class CaseOut(CamelModel):
    id: str
    user_id: str
    violation_type: ViolationType
    violation: str
    fine: float
    proof_url: str
    evidence_urls: List[str] = []
    location: str
    date: datetime
    due_date: Optional[datetime] = None
    status: CaseStatus
    paid_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    officer_id: Optional[str] = None
    vehicle_details: Optional[VehicleDetails] = None
    created_at: datetime
    updated_at: datetime


class RiderCaseOut(CaseOut):
    rider_name: str
    number_plate: str


class AdminCaseOut(CaseOut):
    user_name: str
    user_email: str
    number_plate: str
