import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from eduhive.core.config import get_settings
from eduhive.models.audit_log import AuditLog
from eduhive.models.course import Course, Lecture
from eduhive.models.course_purchase import CoursePurchase
from eduhive.models.lecture_progress import LectureProgress
from eduhive.models.user import User
from eduhive.models.wallet_transaction import WalletTransaction

DOCUMENT_MODELS = [
    User,
    WalletTransaction,
    CoursePurchase,
    LectureProgress,
    Course,
    Lecture,
    AuditLog,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true)."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(database=None) -> None:
    """Bind document models. Pass a database to skip building a client (tests)."""
    if database is None:
        settings = get_settings()
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
        database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
