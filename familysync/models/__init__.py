"""SQLAlchemy ORM models.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_all`` runs.
"""

from familysync.models.family import Family  # noqa: F401
from familysync.models.membership import Membership, MembershipStatus, Role  # noqa: F401
from familysync.models.sync_fields import SYNC_FIELD_NAMES, SyncFieldsMixin  # noqa: F401
from familysync.models.user import UserProfile  # noqa: F401

# Remote record type name -> model class, in push order.
SYNCABLE_MODELS = {
    Family.__record_type__: Family,
    UserProfile.__record_type__: UserProfile,
    Membership.__record_type__: Membership,
}

__all__ = [
    "Family",
    "Membership",
    "MembershipStatus",
    "Role",
    "SYNCABLE_MODELS",
    "SYNC_FIELD_NAMES",
    "SyncFieldsMixin",
    "UserProfile",
]
