from eduhive.models.user import User
from eduhive.models.wallet_transaction import WalletTransaction
from eduhive.models.course_purchase import CoursePurchase
from eduhive.models.lecture_progress import LectureProgress
from eduhive.models.course import Course, Lecture
from eduhive.models.audit_log import AuditLog

__all__ = [
    "User",
    "WalletTransaction",
    "CoursePurchase",
    "LectureProgress",
    "Course",
    "Lecture",
    "AuditLog",
]
