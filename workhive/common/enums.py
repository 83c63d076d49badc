import enum


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class ProjectStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISPUTED = "disputed"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISPUTED = "disputed"
    PAID = "paid"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    ESCROWED = "escrowed"
    IN_PROGRESS = "in_progress"
    RELEASED = "released"
    FAILED = "failed"


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"

    @property
    def is_actionable(self) -> bool:
        match self:
            case DisputeStatus.OPEN | DisputeStatus.UNDER_REVIEW:
                return True
            case DisputeStatus.RESOLVED | DisputeStatus.CLOSED:
                return False


ACTIONABLE_DISPUTE_STATUSES = tuple(s.value for s in DisputeStatus if s.is_actionable)


class NotificationCategory(str, enum.Enum):
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_UPDATED = "dispute_updated"
    DISPUTE_RESOLVED = "dispute_resolved"
    DISPUTE_CLOSED = "dispute_closed"
    PROJECT_COMPLETED = "project_completed"
