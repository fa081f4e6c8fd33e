"""Entity Store.

Local, optimistic record storage for families, user profiles and
memberships on top of one ``AsyncSession``. Every operation, read or
write, runs under a single ``asyncio.Lock`` so no two mutations interleave
and the session is never used concurrently.

Inserts are gated by the validation service, unique keys are checked
before the insert and again by the database constraint on commit. Every
write commits immediately; a failed commit is rolled back and the objects
held by the session are reloaded, so callers never see half-applied state.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, String, Uuid, func, inspect, select
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from familysync.config import settings
from familysync.errors import (
    ConstraintViolation,
    DataServiceError,
    InvalidData,
    MigrationError,
    ValidationFailed,
)
from familysync.models import (
    SYNCABLE_MODELS,
    Family,
    Membership,
    MembershipStatus,
    Role,
    SyncFieldsMixin,
    UserProfile,
)
from familysync.services import code_generator, sync_state
from familysync.services.relationships import RelationshipManager
from familysync.services.validation import validate_family, validate_user_profile
from familysync.types import UTCDateTime, utcnow

logger = logging.getLogger(__name__)

_FAMILY_UPDATABLE = frozenset({"name", "code"})
_USER_UPDATABLE = frozenset({"display_name", "avatar_url"})


@dataclass
class BulkCreateResult:
    created: list[Family] = field(default_factory=list)
    failures: list[tuple[dict[str, Any], DataServiceError]] = field(default_factory=list)


def _model_for(kind: type | str) -> type:
    if isinstance(kind, str):
        try:
            return SYNCABLE_MODELS[kind]
        except KeyError:
            raise InvalidData(f"Unknown record type: {kind}") from None
    if kind not in SYNCABLE_MODELS.values():
        raise InvalidData(f"Unknown record type: {kind!r}")
    return kind


def _validate_fields(model: type, fields: dict[str, Any]) -> list[str]:
    """Validation errors for a would-be record state given as a field dict."""
    if model is Family:
        return validate_family(fields.get("name", ""), fields.get("code", ""))
    if model is UserProfile:
        return validate_user_profile(
            fields.get("display_name", ""), fields.get("apple_user_id_hash", ""),
        )
    errors = []
    for name, enum_cls in (("role", Role), ("status", MembershipStatus)):
        try:
            enum_cls(fields.get(name))
        except ValueError:
            errors.append(f"Unknown {name}: {fields.get(name)!r}")
    return errors


def _coerce_value(column: Column, value: Any) -> Any:
    if value is None:
        if not column.nullable:
            raise ValueError(f"{column.name} cannot be empty")
        return None
    column_type = column.type
    if isinstance(column_type, SqlEnum):
        try:
            return column_type.enum_class(value)
        except ValueError:
            raise ValueError(f"Unknown {column.name}: {value!r}") from None
    if isinstance(column_type, Uuid):
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value))
        except ValueError:
            raise ValueError(f"{column.name} is not a UUID: {value!r}") from None
    if isinstance(column_type, UTCDateTime):
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value)
            except ValueError:
                raise ValueError(f"{column.name} is not an ISO datetime: {value!r}") from None
        if not isinstance(value, datetime):
            raise TypeError(f"{column.name} must be a datetime, got {type(value).__name__}")
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    if isinstance(column_type, String) and not isinstance(value, str):
        raise TypeError(f"{column.name} must be a string, got {type(value).__name__}")
    return value


def _coerce(model: type, changes: dict[str, Any]) -> dict[str, Any]:
    """Convert changed values to their column types.

    Raises ValueError or TypeError for a value the column cannot hold.
    """
    columns = model.__table__.c
    return {name: _coerce_value(columns[name], value) for name, value in changes.items()}


class EntityStore:
    """Family, user profile and membership storage with sync bookkeeping."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.relationships = RelationshipManager(session)
        self._lock = asyncio.Lock()
        sync_state.install_dirty_tracking(session)

    # -- transaction helpers --------------------------------------------------

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self._rollback()
            raise ConstraintViolation(str(exc.orig)) from exc

    async def _rollback(self) -> None:
        await self.session.rollback()
        # rollback() expires everything; reload now so attribute access
        # afterwards never needs implicit IO.
        for obj in list(self.session.identity_map.values()):
            await self.session.refresh(obj)

    async def save(self) -> None:
        """Commit changes made directly on model attributes."""
        async with self._lock:
            await self._commit()

    async def rollback(self) -> None:
        """Discard uncommitted changes and reload the session's objects."""
        async with self._lock:
            await self._rollback()

    # -- families -------------------------------------------------------------

    async def _family_code_exists(self, code: str, exclude_id: uuid.UUID | None = None) -> bool:
        stmt = select(Family.id).where(Family.code == code)
        if exclude_id is not None:
            stmt = stmt.where(Family.id != exclude_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def create_family(
        self, name: str, code: str, created_by_user_id: uuid.UUID,
    ) -> Family:
        async with self._lock:
            errors = validate_family(name, code)
            if errors:
                raise ValidationFailed(errors)
            if await self._family_code_exists(code):
                raise ConstraintViolation("Family code already exists")

            family = Family(name=name, code=code, created_by_user_id=created_by_user_id)
            if not family.is_fully_valid:
                raise InvalidData("Family data is invalid")

            self.session.add(family)
            await self._commit()
        logger.info("Created family %s (code %s)", family.id, family.code)
        return family

    async def create_families(self, rows: Iterable[dict[str, Any]]) -> BulkCreateResult:
        """Create several families; each one succeeds or fails on its own."""
        outcome = BulkCreateResult()
        for row in rows:
            try:
                family = await self.create_family(
                    row.get("name", ""), row.get("code", ""), row.get("created_by_user_id"),
                )
            except DataServiceError as exc:
                logger.warning("Bulk create skipped %r: %s", row, exc)
                outcome.failures.append((row, exc))
                continue
            outcome.created.append(family)
        return outcome

    async def fetch_family(self, family_id: uuid.UUID) -> Family | None:
        async with self._lock:
            return await self.session.get(Family, family_id)

    async def fetch_family_by_code(self, code: str) -> Family | None:
        if not code or not code.strip():
            raise InvalidData("Family code cannot be empty")
        async with self._lock:
            result = await self.session.execute(select(Family).where(Family.code == code))
            return result.scalar_one_or_none()

    async def family_code_exists(self, code: str) -> bool:
        async with self._lock:
            return await self._family_code_exists(code)

    async def update_family(self, family: Family, **fields: Any) -> Family:
        unknown = set(fields) - _FAMILY_UPDATABLE
        if unknown:
            raise InvalidData(f"Cannot update family fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            name = fields.get("name", family.name)
            code = fields.get("code", family.code)
            errors = validate_family(name, code)
            if errors:
                raise ValidationFailed(errors)
            if code != family.code and await self._family_code_exists(code, exclude_id=family.id):
                raise ConstraintViolation("Family code already exists")

            family.name = name
            family.code = code
            family.mark_dirty()
            await self._commit()
        return family

    async def generate_unique_family_code(self) -> str:
        async with self._lock:
            return await code_generator.generate_unique_family_code(
                self.session,
                length=settings.FAMILY_CODE_LENGTH,
                max_attempts=settings.FAMILY_CODE_MAX_ATTEMPTS,
            )

    # -- user profiles --------------------------------------------------------

    async def create_user_profile(
        self,
        display_name: str,
        apple_user_id_hash: str,
        avatar_url: str | None = None,
    ) -> UserProfile:
        async with self._lock:
            errors = validate_user_profile(display_name, apple_user_id_hash)
            if errors:
                raise ValidationFailed(errors)
            existing = await self.session.execute(
                select(UserProfile.id).where(UserProfile.apple_user_id_hash == apple_user_id_hash)
            )
            if existing.first() is not None:
                raise ConstraintViolation("A user profile with this Apple ID hash already exists")

            user = UserProfile(
                display_name=display_name,
                apple_user_id_hash=apple_user_id_hash,
                avatar_url=avatar_url,
            )
            if not user.is_fully_valid:
                raise InvalidData("User profile data is invalid")

            self.session.add(user)
            await self._commit()
        logger.info("Created user profile %s", user.id)
        return user

    async def fetch_user_profile(self, user_id: uuid.UUID) -> UserProfile | None:
        async with self._lock:
            return await self.session.get(UserProfile, user_id)

    async def fetch_user_profile_by_hash(self, apple_user_id_hash: str) -> UserProfile | None:
        if not apple_user_id_hash or not apple_user_id_hash.strip():
            raise InvalidData("Apple ID hash cannot be empty")
        async with self._lock:
            result = await self.session.execute(
                select(UserProfile).where(UserProfile.apple_user_id_hash == apple_user_id_hash)
            )
            return result.scalar_one_or_none()

    async def update_user_profile(self, user: UserProfile, **fields: Any) -> UserProfile:
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise InvalidData(f"Cannot update user profile fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            display_name = fields.get("display_name", user.display_name)
            errors = validate_user_profile(display_name, user.apple_user_id_hash)
            if errors:
                raise ValidationFailed(errors)

            user.display_name = display_name
            if "avatar_url" in fields:
                user.avatar_url = fields["avatar_url"]
            user.mark_dirty()
            await self._commit()
        return user

    # -- memberships ----------------------------------------------------------

    async def create_membership(
        self, family: Family, user: UserProfile, role: Role,
    ) -> Membership:
        if family is None or user is None:
            raise InvalidData("Membership requires both a family and a user")
        role = Role(role)

        async with self._lock:
            if await self.relationships.active_membership_between(user, family) is not None:
                raise ConstraintViolation("User is already a member of this family")
            if role == Role.parent_admin and await self.relationships.has_parent_admin(family):
                raise ConstraintViolation("A Parent Admin already exists for this family")

            membership = Membership(family=family, user=user, role=role)
            if not membership.is_fully_valid:
                raise InvalidData("Membership data is invalid")

            self.session.add(membership)
            await self._commit()
        logger.info(
            "Created membership %s (%s in family %s)", membership.id, role.value, family.id,
        )
        return membership

    async def fetch_membership(self, membership_id: uuid.UUID) -> Membership | None:
        async with self._lock:
            return await self.session.get(Membership, membership_id)

    async def update_membership_role(self, membership: Membership, role: Role) -> Membership:
        role = Role(role)
        async with self._lock:
            if membership.family is None:
                raise ValidationFailed(["Invalid membership: no family associated"])
            if membership.role == role:
                raise ValidationFailed(["Member already has this role"])
            if role == Role.parent_admin and await self.relationships.has_parent_admin(
                membership.family
            ):
                raise ConstraintViolation("A Parent Admin already exists for this family")

            membership.update_role(role)
            await self._commit()
        return membership

    async def remove_membership(self, membership: Membership) -> Membership:
        """Soft delete: flip the status, keep the record."""
        async with self._lock:
            membership.remove()
            await self._commit()
        logger.info("Removed membership %s", membership.id)
        return membership

    async def activate_membership(self, membership: Membership) -> Membership:
        async with self._lock:
            if membership.user is not None and membership.family is not None:
                current = await self.relationships.active_membership_between(
                    membership.user, membership.family,
                )
                if current is not None and current.id != membership.id:
                    raise ConstraintViolation("User is already a member of this family")
            if membership.is_parent_admin and membership.family is not None:
                current = await self.relationships.parent_admin(membership.family)
                if current is not None and current.id != membership.id:
                    raise ConstraintViolation("A Parent Admin already exists for this family")
            membership.activate()
            await self._commit()
        return membership

    async def reassign_user(self, membership: Membership, user: UserProfile | None) -> Membership:
        async with self._lock:
            self.relationships.reassign_user(membership, user)
            await self._commit()
        return membership

    async def reassign_family(self, membership: Membership, family: Family | None) -> Membership:
        async with self._lock:
            self.relationships.reassign_family(membership, family)
            await self._commit()
        return membership

    # -- relationship views ---------------------------------------------------

    async def memberships_for_family(self, family: Family) -> list[Membership]:
        async with self._lock:
            return await self.relationships.memberships_for_family(family)

    async def memberships_for_user(self, user: UserProfile) -> list[Membership]:
        async with self._lock:
            return await self.relationships.memberships_for_user(user)

    async def active_memberships(self, family: Family) -> list[Membership]:
        async with self._lock:
            return await self.relationships.active_memberships(family)

    async def active_member_count(self, family: Family) -> int:
        async with self._lock:
            return await self.relationships.active_member_count(family)

    async def parent_admin(self, family: Family) -> Membership | None:
        async with self._lock:
            return await self.relationships.parent_admin(family)

    async def has_parent_admin(self, family: Family) -> bool:
        async with self._lock:
            return await self.relationships.has_parent_admin(family)

    async def can_user_join_family(self, user: UserProfile, family: Family) -> bool:
        async with self._lock:
            return await self.relationships.can_user_join_family(user, family)

    # -- generic --------------------------------------------------------------

    async def fetch(self, kind: type | str, record_id: uuid.UUID):
        model = _model_for(kind)
        async with self._lock:
            return await self.session.get(model, record_id)

    async def fetch_all(self, kind: type | str) -> list:
        model = _model_for(kind)
        async with self._lock:
            result = await self.session.execute(select(model))
            return list(result.scalars().all())

    async def count(self, kind: type | str) -> int:
        model = _model_for(kind)
        async with self._lock:
            result = await self.session.execute(select(func.count(model.id)))
            return result.scalar() or 0

    async def delete(self, entity: SyncFieldsMixin) -> None:
        """Hard delete, applying the cascade rules of RelationshipManager."""
        async with self._lock:
            if isinstance(entity, Family):
                await self.relationships.cascade_family_delete(entity)
            elif isinstance(entity, UserProfile):
                await self.relationships.orphan_user_memberships(entity)
            await self.session.delete(entity)
            await self._commit()
        logger.info("Deleted %s %s", entity.__record_type__, entity.id)

    # -- sync bookkeeping -----------------------------------------------------

    async def fetch_records_needing_sync(self, kind: type | str) -> list:
        model = _model_for(kind)
        async with self._lock:
            result = await self.session.execute(
                select(model).where(model.needs_sync.is_(True)).order_by(model.modified_at)
            )
            return list(result.scalars().all())

    async def pending_counts(self) -> dict[str, int]:
        async with self._lock:
            return await sync_state.pending_counts(self.session)

    def _is_gone(self, record: SyncFieldsMixin) -> bool:
        state = inspect(record)
        return state.was_deleted or state.detached

    async def confirm_push(
        self, record: SyncFieldsMixin, pushed: sync_state.RecordSnapshot, remote_id: str,
    ) -> bool:
        """Record a successful push. Returns True when the record is now clean.

        If the record was edited locally while the push was in flight it
        keeps its dirty flag; only the remote id is taken over.
        """
        async with self._lock:
            if self._is_gone(record):
                return False
            if record.modified_at == pushed.modified_at:
                record.mark_as_synced(remote_id)
                clean = True
            else:
                record.ck_record_id = remote_id
                record.last_sync_date = utcnow()
                record.needs_sync = True
                clean = False
            await self._commit()
        return clean

    async def requeue(self, record: SyncFieldsMixin, touch: bool = False) -> None:
        """Make sure the record is dirty. ``touch`` also bumps modified_at."""
        async with self._lock:
            if self._is_gone(record):
                return
            if touch:
                record.mark_dirty()
            else:
                record.needs_sync = True
            await self._commit()

    async def apply_remote(
        self, record: SyncFieldsMixin, remote: sync_state.RecordSnapshot,
    ) -> None:
        """Overwrite local data with the remote version and mark it synced."""
        async with self._lock:
            if self._is_gone(record):
                return
            # relink() may query; the record must not flush half-applied.
            with self.session.sync_session.no_autoflush:
                sync_state.apply_snapshot(record, remote)
                if isinstance(record, Membership):
                    await self.relationships.relink(record)
                record.mark_as_synced(remote.remote_id or record.ck_record_id or str(record.id))
            await self._commit()

    async def insert_from_remote(self, remote: sync_state.RecordSnapshot) -> SyncFieldsMixin:
        """Create a local record from a remote snapshot we have never seen."""
        model = _model_for(remote.record_type)
        async with self._lock:
            record = model(id=remote.id, **remote.fields)
            if remote.modified_at is not None:
                record.modified_at = remote.modified_at
            if isinstance(record, Membership):
                await self.relationships.relink(record)
            record.mark_as_synced(remote.remote_id or str(remote.id))
            self.session.add(record)
            await self._commit()
            if not isinstance(record, Membership):
                await self.relationships.adopt_memberships(record)
        logger.info("Inserted %s %s from remote", remote.record_type, remote.id)
        return record

    async def recover_partial_migration(self, kind: type | str) -> sync_state.RecoveryReport:
        model = _model_for(kind)
        async with self._lock:
            report = await sync_state.recover_partial_migration(self.session, model)
            await self._commit()
        return report

    async def migrate(
        self,
        kind: type | str,
        transform: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> int:
        """Apply ``transform`` to every record of a kind, all or nothing.

        ``transform`` receives a copy of a record's syncable fields and
        returns the fields to change. Every result is validated before the
        first record is touched; any failure raises MigrationError and
        leaves the store as it was. Returns the number of changed records.
        """
        model = _model_for(kind)
        async with self._lock:
            result = await self.session.execute(select(model))
            records = list(result.scalars().all())

            staged: list[tuple[SyncFieldsMixin, dict[str, Any]]] = []
            for record in records:
                current = sync_state.snapshot(record)
                try:
                    changes = transform(dict(current.fields)) or {}
                except Exception as exc:
                    raise MigrationError(
                        f"transform failed for {model.__record_type__} {record.id}: {exc}"
                    ) from exc
                unknown = set(changes) - set(model.__sync_fields__)
                if unknown:
                    raise MigrationError(f"unknown fields: {', '.join(sorted(unknown))}")
                try:
                    changes = _coerce(model, changes)
                except (TypeError, ValueError) as exc:
                    raise MigrationError(
                        f"{model.__record_type__} {record.id} invalid: {exc}"
                    ) from exc
                errors = _validate_fields(model, current.with_fields(**changes).fields)
                if errors:
                    raise MigrationError(
                        f"{model.__record_type__} {record.id} invalid: {', '.join(errors)}"
                    )
                if changes:
                    staged.append((record, changes))

            try:
                # relink() queries; nothing may flush before every record is staged.
                with self.session.sync_session.no_autoflush:
                    for record, changes in staged:
                        for name, value in changes.items():
                            setattr(record, name, value)
                        if isinstance(record, Membership) and (
                            {"family_id", "user_id"} & changes.keys()
                        ):
                            await self.relationships.relink(record)
                        record.mark_dirty()
                await self._commit()
            except ConstraintViolation as exc:
                raise MigrationError(str(exc)) from exc
            except SQLAlchemyError as exc:
                await self._rollback()
                raise MigrationError(f"{model.__record_type__} migration failed: {exc}") from exc

        logger.info("Migrated %d %s records", len(staged), model.__record_type__)
        return len(staged)
