from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from maintdesk.auth.permissions import INVITE_ACTION_BY_ROLE, Action, ResourceRef, require
from maintdesk.core.clock import as_utc, utcnow
from maintdesk.core.config import settings
from maintdesk.core.errors import (
    AlreadyRedeemed,
    ConflictError,
    DomainError,
    DuplicateInvitation,
    EmailMismatch,
    TokenExpired,
    TokenNotFound,
    ValidationError,
)
from maintdesk.core.roles import INVITABLE_ROLES, ActorRole, parse_role
from maintdesk.core.security import hash_password
from maintdesk.crud.activity import record_activity
from maintdesk.crud.scoped import must_get_invitation, must_get_property, must_get_unit
from maintdesk.crud.units import place_tenant
from maintdesk.models.invitation import Invitation
from maintdesk.models.notification_preference import NotificationPreference
from maintdesk.models.organization import Organization
from maintdesk.models.profile import Profile
from maintdesk.models.unit import Unit
from maintdesk.services.events import DomainEvent, EventPublisher, EventType
from maintdesk.services.usage_limiter import ROLE_RESOURCE, UsageLimiter

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _generate_token() -> str:
    # 48 random bytes -> 384 bits, URL-safe
    return secrets.token_urlsafe(48)


class InvitationService:
    """
    Issues and redeems single-use onboarding tokens.

    Redemption claims the token with one conditional UPDATE
    (``accepted_at IS NULL``), so of two concurrent redemptions exactly one
    creates an account and the other gets ALREADY_REDEEMED.
    """

    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher,
        *,
        app_url: str | None = None,
        expiry_days: int | None = None,
    ) -> None:
        self.db = db
        self.publisher = publisher
        self.app_url = (app_url if app_url is not None else settings.APP_URL).rstrip("/")
        self.expiry_days = expiry_days or settings.INVITE_EXPIRY_DAYS

    def invite_url(self, token: str) -> str:
        return f"{self.app_url}/join?token={token}"

    # =========================================================
    # ISSUE
    # =========================================================
    async def issue(
        self,
        inviter: Profile,
        *,
        email: str,
        role: str,
        property_id: Optional[uuid.UUID] = None,
        unit_id: Optional[uuid.UUID] = None,
    ) -> Invitation:
        try:
            invite_role = parse_role(role)
        except ValueError:
            invite_role = None
        if invite_role not in INVITABLE_ROLES:
            allowed = ", ".join(sorted(r.value for r in INVITABLE_ROLES))
            raise ValidationError(f"Invalid role. Allowed: {allowed}", code="INVALID_ROLE")

        org_id = inviter.organization_id
        require(inviter, INVITE_ACTION_BY_ROLE[invite_role], ResourceRef(organization_id=org_id))

        email = Profile.normalize_email(email)
        if "@" not in email:
            raise ValidationError("Invalid email", code="INVALID_EMAIL", field="email")

        property_id, unit_id = await self._validate_scope(org_id, invite_role, property_id, unit_id)

        # Email is the global login identity
        existing = await self.db.scalar(select(Profile).where(Profile.email == email))
        if existing is not None:
            if existing.organization_id != org_id:
                raise ConflictError("An account with this email already exists", code="ACCOUNT_EXISTS")
            if existing.is_active:
                raise ConflictError("This person is already a member of your organization", code="ALREADY_MEMBER")

        # Pending = not accepted, not revoked, not expired
        now = utcnow()
        pending = await self.db.scalar(
            select(Invitation.id).where(
                Invitation.organization_id == org_id,
                Invitation.email == email,
                Invitation.accepted_at.is_(None),
                Invitation.revoked_at.is_(None),
                Invitation.expires_at > now,
            )
        )
        if pending is not None:
            raise DuplicateInvitation()

        await UsageLimiter(self.db).enforce(org_id, ROLE_RESOURCE[invite_role])

        invitation = Invitation(
            organization_id=org_id,
            email=email,
            role=invite_role.value,
            property_id=property_id,
            unit_id=unit_id,
            token=_generate_token(),
            expires_at=now + timedelta(days=self.expiry_days),
            invited_by=inviter.id,
        )
        self.db.add(invitation)
        await self.db.commit()
        await self.db.refresh(invitation)

        log.info(
            "invitation issued for role %s",
            invitation.role,
            extra={"org_id": org_id, "actor_id": inviter.id, "invitation_id": invitation.id},
        )

        org = await self.db.get(Organization, org_id)
        self.publisher.publish(
            DomainEvent(
                type=EventType.INVITATION_ISSUED,
                organization_id=org_id,
                actor_id=inviter.id,
                payload={
                    "invitation_id": str(invitation.id),
                    "email": invitation.email,
                    "role": invitation.role,
                    "invite_url": self.invite_url(invitation.token),
                    "organization_name": org.name if org else None,
                    "expires_in_days": self.expiry_days,
                },
            )
        )
        return invitation

    async def _validate_scope(
        self,
        org_id: uuid.UUID,
        role: ActorRole,
        property_id: Optional[uuid.UUID],
        unit_id: Optional[uuid.UUID],
    ) -> tuple[Optional[uuid.UUID], Optional[uuid.UUID]]:
        if unit_id is not None:
            if role is not ActorRole.TENANT:
                raise ValidationError("Only tenants can be invited into a unit", code="INVALID_SCOPE")
            unit = await must_get_unit(self.db, org_id=org_id, unit_id=unit_id)
            if property_id is not None and unit.property_id != property_id:
                raise ValidationError("Unit does not belong to that property", code="INVALID_SCOPE")
            return unit.property_id, unit.id
        if property_id is not None:
            prop = await must_get_property(self.db, org_id=org_id, property_id=property_id)
            return prop.id, None
        return None, None

    # =========================================================
    # LIST / REVOKE
    # =========================================================
    async def list(self, actor: Profile) -> list[Invitation]:
        require(actor, Action.INVITATION_READ, ResourceRef(organization_id=actor.organization_id))
        stmt = (
            select(Invitation)
            .where(Invitation.organization_id == actor.organization_id)
            .order_by(Invitation.created_at.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def revoke(self, actor: Profile, invitation_id: uuid.UUID) -> Invitation:
        require(actor, Action.INVITATION_REVOKE, ResourceRef(organization_id=actor.organization_id))
        inv = await must_get_invitation(self.db, org_id=actor.organization_id, invitation_id=invitation_id)

        result = await self.db.execute(
            update(Invitation)
            .where(
                Invitation.id == inv.id,
                Invitation.accepted_at.is_(None),
                Invitation.revoked_at.is_(None),
            )
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self.db.refresh(inv)
            if inv.accepted_at is not None:
                raise AlreadyRedeemed()
            return inv

        await self.db.commit()
        await self.db.refresh(inv)
        log.info("invitation revoked", extra={"org_id": inv.organization_id, "invitation_id": inv.id})
        return inv

    # =========================================================
    # PREVIEW (public)
    # =========================================================
    async def preview(self, token: str) -> tuple[Invitation, Organization]:
        """Validate a token without consuming it, for pre-filling the join form."""
        inv = await self._load_by_token((token or "").strip())
        if inv is None:
            raise TokenNotFound()
        self._check_redeemable(inv, utcnow())
        org = await self.db.get(Organization, inv.organization_id)
        return inv, org

    # =========================================================
    # REDEEM (public)
    # =========================================================
    async def redeem(
        self,
        *,
        token: str,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Profile:
        token = (token or "").strip()
        if not token:
            raise TokenNotFound()

        inv = await self._load_by_token(token)
        if inv is None:
            raise TokenNotFound()

        if Profile.normalize_email(email) != Profile.normalize_email(inv.email):
            raise EmailMismatch()

        now = utcnow()
        self._check_redeemable(inv, now)

        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                code="WEAK_PASSWORD",
                field="password",
            )
        try:
            phone_e164 = Profile.normalize_phone_e164(phone)
        except ValueError as e:
            raise ValidationError(str(e), code="INVALID_PHONE", field="phone")

        inv_id = inv.id
        if not await self._claim(inv, now):
            # rollback expires inv; reload it by id
            await self.db.rollback()
            fresh = await self.db.get(Invitation, inv_id, populate_existing=True)
            log.info("invitation redemption lost a race", extra={"invitation_id": inv_id})
            if fresh is not None and fresh.accepted_at is None:
                self._check_redeemable(fresh, utcnow())
            raise AlreadyRedeemed()

        try:
            role = ActorRole(inv.role)
            await UsageLimiter(self.db).enforce(inv.organization_id, ROLE_RESOURCE[role])

            profile = await self._create_or_reactivate_profile(
                inv,
                role=role,
                password=password,
                full_name=Profile.normalize_full_name(full_name),
                phone_e164=phone_e164,
            )

            if role is ActorRole.TENANT and inv.unit_id is not None:
                unit = await self.db.scalar(
                    select(Unit).where(Unit.id == inv.unit_id, Unit.organization_id == inv.organization_id)
                )
                if unit is not None:
                    await place_tenant(self.db, unit, profile.id)

            await self.db.execute(
                update(Invitation)
                .where(Invitation.id == inv.id)
                .values(accepted_by=profile.id)
                .execution_options(synchronize_session=False)
            )
            record_activity(
                self.db,
                organization_id=inv.organization_id,
                actor_id=profile.id,
                action=EventType.INVITATION_ACCEPTED.value,
                details={"invitation_id": str(inv.id), "role": role.value},
            )
            await self.db.commit()
        except DomainError:
            await self.db.rollback()
            raise

        await self.db.refresh(profile)
        log.info(
            "invitation redeemed",
            extra={"org_id": inv.organization_id, "actor_id": profile.id, "invitation_id": inv.id},
        )

        self.publisher.publish(
            DomainEvent(
                type=EventType.INVITATION_ACCEPTED,
                organization_id=inv.organization_id,
                actor_id=profile.id,
                payload={
                    "invitation_id": str(inv.id),
                    "invited_by": str(inv.invited_by) if inv.invited_by else None,
                    "email": profile.email,
                    "role": profile.role,
                },
            )
        )
        return profile

    # =========================================================
    # Internals
    # =========================================================
    async def _load_by_token(self, token: str) -> Optional[Invitation]:
        if not token:
            return None
        return await self.db.scalar(select(Invitation).where(Invitation.token == token))

    @staticmethod
    def _check_redeemable(inv: Invitation, now: datetime) -> None:
        # accepted wins over expired: a used token is reported as used
        if inv.accepted_at is not None:
            raise AlreadyRedeemed()
        if inv.revoked_at is not None or as_utc(inv.expires_at) <= now:
            raise TokenExpired()

    async def _claim(self, inv: Invitation, now: datetime) -> bool:
        """
        The single atomic check-and-set for redemption. Returns False when
        another redemption (or revocation/expiry) got there first.
        """
        result = await self.db.execute(
            update(Invitation)
            .where(
                Invitation.id == inv.id,
                Invitation.accepted_at.is_(None),
                Invitation.revoked_at.is_(None),
                Invitation.expires_at > now,
            )
            .values(accepted_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _create_or_reactivate_profile(
        self,
        inv: Invitation,
        *,
        role: ActorRole,
        password: str,
        full_name: Optional[str],
        phone_e164: Optional[str],
    ) -> Profile:
        email = Profile.normalize_email(inv.email)
        existing = await self.db.scalar(select(Profile).where(Profile.email == email))

        if existing is None:
            profile = Profile(
                organization_id=inv.organization_id,
                role=role.value,
                email=email,
                password_hash=hash_password(password),
                full_name=full_name,
                phone_e164=phone_e164,
                is_active=True,
            )
            self.db.add(profile)
            await self.db.flush()
            self.db.add(NotificationPreference.defaults(profile.id))
            return profile

        # Only a removed member of this same organization can come back
        if existing.is_active or existing.organization_id != inv.organization_id:
            raise ConflictError("An account with this email already exists", code="ACCOUNT_EXISTS")

        existing.is_active = True
        existing.role = role.value
        existing.password_hash = hash_password(password)
        existing.full_name = full_name or existing.full_name
        existing.phone_e164 = phone_e164 or existing.phone_e164
        await self.db.flush()
        return existing
