from workhive.db.models.dispute import Dispute
from workhive.db.models.milestone import Milestone
from workhive.db.models.notification import Notification
from workhive.db.models.payment import Payment
from workhive.db.models.project import Project
from workhive.db.models.user import User

__all__ = [
    "Dispute",
    "Milestone",
    "Notification",
    "Payment",
    "Project",
    "User",
]
