import enum
from typing import Dict, List


class UserRole(enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class UserStatus(enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class ViolationType(enum.Enum):
    SPEEDING = "speeding"
    PARKING = "parking"
    TRAFFIC_LIGHT = "traffic_light"
    NO_HELMET = "no_helmet"
    WRONG_LANE = "wrong_lane"
    MOBILE_USE = "mobile_use"
    OTHER = "other"


class CaseStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    DISPUTED = "disputed"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class QueryCategory(enum.Enum):
    VIOLATION_DISPUTE = "violation_dispute"
    PAYMENT_ISSUES = "payment_issues"
    TECHNICAL_SUPPORT = "technical_support"
    GENERAL_INQUIRY = "general_inquiry"
    OTHER = "other"


class QueryPriority(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class QueryStatus(enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING_USER = "pending_user"
    RESOLVED = "resolved"
    CLOSED = "closed"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(enum.Enum):
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    DIGITAL_WALLET = "digital_wallet"


class AdminRole(enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MODERATOR = "moderator"
    SUPPORT = "support"


class AdminDepartment(enum.Enum):
    ENFORCEMENT = "enforcement"
    TECH_SUPPORT = "tech_support"
    FINANCE = "finance"
    MANAGEMENT = "management"


class PermissionResource(enum.Enum):
    VIOLATIONS = "violations"
    USERS = "users"
    PAYMENTS = "payments"
    QUERIES = "queries"
    REPORTS = "reports"
    SETTINGS = "settings"


class PermissionAction(enum.Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    APPROVE = "approve"


DEFAULT_VIOLATION_DESCRIPTIONS: Dict[ViolationType, str] = {
    ViolationType.SPEEDING: "Exceeding speed limit in residential area",
    ViolationType.PARKING: "Bike parked in no-parking zone",
    ViolationType.TRAFFIC_LIGHT: "Failed to stop at red light",
    ViolationType.NO_HELMET: "Riding without proper safety helmet",
    ViolationType.WRONG_LANE: "Riding in wrong direction on bike lane",
    ViolationType.MOBILE_USE: "Using mobile phone while riding",
    ViolationType.OTHER: "General traffic violation",
}

DEFAULT_LOCATION = "Not specified"

# Days between filing a violation and its payment due date
DEFAULT_DUE_DAYS = 30

ALLOWED_IMAGE_TYPES: List[str] = [
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
]

ALLOWED_VIDEO_TYPES: List[str] = [
    "video/mp4",
    "video/avi",
    "video/mov",
    "video/wmv",
    "video/flv",
    "video/webm",
]


def full_permissions() -> List[Dict[str, List[str]]]:
    """Every action on every resource, as granted to a seeded super admin"""
    actions = [action.value for action in PermissionAction]
    return [{"resource": resource.value, "actions": list(actions)} for resource in PermissionResource]


# Case statuses that still have a fine to collect
OUTSTANDING_CASE_STATUSES = (CaseStatus.PENDING, CaseStatus.DISPUTED)
