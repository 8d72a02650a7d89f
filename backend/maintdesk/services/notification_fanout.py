"""
Turns one domain event into per-recipient notifications.

The in-app row is the durable record and is committed first. Email and SMS
are attempted afterwards, one recipient and one channel at a time; their
failures are logged and never reach the caller.
"""
from __future__ import annotations

import html
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from maintdesk.core.roles import ActorRole, STAFF_ROLES
from maintdesk.core.tier_limits import ResourceType
from maintdesk.models.maintenance_request import MaintenanceRequest
from maintdesk.models.notification import Notification
from maintdesk.models.notification_preference import NotificationPreference
from maintdesk.models.organization import Organization
from maintdesk.models.profile import Profile
from maintdesk.models.request_comment import RequestComment
from maintdesk.models.sms_log import SmsLog
from maintdesk.services.events import DomainEvent, EventType
from maintdesk.services.transports import EmailSender, SmsSender, short
from maintdesk.services.usage_limiter import UsageLimiter

log = logging.getLogger(__name__)

# Preference kind consulted for each event; None = no opt-out (in-app only).
PREFERENCE_KIND: dict[EventType, Optional[str]] = {
    EventType.REQUEST_CREATED: "new_request",
    EventType.REQUEST_ASSIGNED: "assignment",
    EventType.REQUEST_UNASSIGNED: "assignment",
    EventType.REQUEST_STATUS_CHANGED: "status_update",
    EventType.REQUEST_COMMENT_ADDED: "comment",
    EventType.REQUEST_PRIORITY_EMERGENCY: "emergency",
    EventType.INVITATION_ACCEPTED: None,
}

# Delivered to these even when the in-app preference is off.
FORCED_EVENTS = frozenset({EventType.REQUEST_PRIORITY_EMERGENCY, EventType.INVITATION_ACCEPTED})


@dataclass(frozen=True)
class RenderedMessage:
    title: str
    body: str
    link: Optional[str] = None


def _uuid(value) -> Optional[uuid.UUID]:
    if value is None:
        return None
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _status_label(status: Optional[str]) -> str:
    return (status or "").replace("_", " ")


class NotificationFanout:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        email_sender: EmailSender,
        sms_sender: SmsSender,
        *,
        app_url: str = "",
    ) -> None:
        self.session_factory = session_factory
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.app_url = app_url.rstrip("/")

    async def dispatch(self, event: DomainEvent) -> None:
        """Background-task entry point: never raises."""
        try:
            await self.handle(event)
        except Exception:
            log.exception(
                "notification fan-out failed",
                extra={"org_id": event.organization_id, "event_type": event.type.value},
            )

    async def handle(self, event: DomainEvent) -> list[Notification]:
        if event.type is EventType.INVITATION_ISSUED:
            await self._send_invitation_email(event)
            return []

        async with self.session_factory() as db:
            req: Optional[MaintenanceRequest] = None
            if event.request_id is not None:
                req = await db.get(MaintenanceRequest, event.request_id)
                if req is None or req.organization_id != event.organization_id:
                    log.warning(
                        "event references a missing request; skipped",
                        extra={"org_id": event.organization_id, "event_type": event.type.value},
                    )
                    return []

            recipient_ids = await self._resolve_recipient_ids(db, event, req)
            recipient_ids.discard(event.actor_id)
            if not recipient_ids:
                return []

            recipients = await self._active_profiles(db, event, recipient_ids)
            preferences = await self._preferences(db, [p.id for p in recipients])
            org = await db.get(Organization, event.organization_id)

            kind = PREFERENCE_KIND[event.type]
            message = self._render(event, req)

            rows: list[Notification] = []
            outbound: list[tuple[str, Profile]] = []
            for profile in recipients:
                pref = preferences.get(profile.id) or NotificationPreference.defaults(profile.id)
                if event.type in FORCED_EVENTS or pref.enabled("in_app", kind):
                    rows.append(
                        Notification(
                            organization_id=event.organization_id,
                            recipient_id=profile.id,
                            type=event.type.value,
                            related_request_id=event.request_id,
                            title=message.title,
                            message=message.body,
                            read=False,
                        )
                    )
                # each channel is gated on its own flag
                if kind is None:
                    continue
                if pref.enabled("email", kind):
                    outbound.append(("email", profile))
                if (
                    pref.enabled("sms", kind)
                    and profile.sms_notifications
                    and profile.phone_e164
                    and org is not None
                    and org.sms_enabled
                ):
                    outbound.append(("sms", profile))

            db.add_all(rows)
            await db.commit()

            log.info(
                "fan-out wrote %d in-app notification(s)",
                len(rows),
                extra={"org_id": event.organization_id, "event_type": event.type.value},
            )

            for channel, profile in outbound:
                if channel == "email":
                    await self._deliver_email(profile, message, event)
                else:
                    await self._deliver_sms(db, profile, message, event)

            return rows

    # =========================================================
    # Recipient resolution
    # =========================================================
    async def _resolve_recipient_ids(
        self,
        db: AsyncSession,
        event: DomainEvent,
        req: Optional[MaintenanceRequest],
    ) -> set[uuid.UUID]:
        t = event.type

        if t in (EventType.REQUEST_CREATED, EventType.REQUEST_PRIORITY_EMERGENCY):
            return set(await self._staff_ids(db, event.organization_id))

        if t is EventType.REQUEST_ASSIGNED:
            assignee = _uuid(event.payload.get("assignee_id"))
            return {assignee} if assignee else set()

        if t is EventType.REQUEST_UNASSIGNED:
            previous = _uuid(event.payload.get("previous_assignee_id"))
            return {previous} if previous else set()

        if t is EventType.REQUEST_STATUS_CHANGED:
            ids = {req.tenant_id}
            if event.new_status == "completed" and req.assigned_to is not None:
                ids.add(req.assigned_to)
            return ids

        if t is EventType.REQUEST_COMMENT_ADDED:
            ids = {req.tenant_id}
            if req.assigned_to is not None:
                ids.add(req.assigned_to)
            authors = await db.execute(
                select(RequestComment.author_id)
                .where(RequestComment.request_id == req.id)
                .distinct()
            )
            ids.update(authors.scalars().all())
            return ids

        if t is EventType.INVITATION_ACCEPTED:
            inviter = _uuid(event.payload.get("invited_by"))
            return {inviter} if inviter else set()

        return set()

    async def _staff_ids(self, db: AsyncSession, organization_id: uuid.UUID) -> Iterable[uuid.UUID]:
        res = await db.execute(
            select(Profile.id).where(
                Profile.organization_id == organization_id,
                Profile.is_active.is_(True),
                Profile.role.in_([r.value for r in STAFF_ROLES]),
            )
        )
        return res.scalars().all()

    async def _active_profiles(
        self,
        db: AsyncSession,
        event: DomainEvent,
        ids: set[uuid.UUID],
    ) -> list[Profile]:
        stmt = select(Profile).where(
            Profile.id.in_(ids),
            Profile.organization_id == event.organization_id,
            Profile.is_active.is_(True),
        )
        if event.type is EventType.REQUEST_COMMENT_ADDED and event.payload.get("is_internal"):
            stmt = stmt.where(Profile.role != ActorRole.TENANT.value)
        res = await db.execute(stmt.order_by(Profile.created_at))
        return list(res.scalars().all())

    async def _preferences(
        self, db: AsyncSession, profile_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, NotificationPreference]:
        if not profile_ids:
            return {}
        res = await db.execute(
            select(NotificationPreference).where(NotificationPreference.profile_id.in_(profile_ids))
        )
        return {p.profile_id: p for p in res.scalars().all()}

    # =========================================================
    # Rendering
    # =========================================================
    def _request_link(self, req: Optional[MaintenanceRequest]) -> Optional[str]:
        if req is None or not self.app_url:
            return None
        return f"{self.app_url}/dashboard/requests/{req.id}"

    def _render(self, event: DomainEvent, req: Optional[MaintenanceRequest]) -> RenderedMessage:
        title = req.title if req is not None else ""
        link = self._request_link(req)
        t = event.type

        if t is EventType.REQUEST_CREATED:
            return RenderedMessage("New maintenance request", f"{title} ({req.priority} priority)", link)
        if t is EventType.REQUEST_PRIORITY_EMERGENCY:
            return RenderedMessage("EMERGENCY maintenance request", title, link)
        if t is EventType.REQUEST_ASSIGNED:
            return RenderedMessage("Request assigned to you", title, link)
        if t is EventType.REQUEST_UNASSIGNED:
            return RenderedMessage("Request unassigned", f"You are no longer assigned to: {title}", link)
        if t is EventType.REQUEST_STATUS_CHANGED:
            return RenderedMessage(
                "Request status updated",
                f"{title} is now {_status_label(event.new_status)}",
                link,
            )
        if t is EventType.REQUEST_COMMENT_ADDED:
            return RenderedMessage("New comment", f"New comment on: {title}", link)
        if t is EventType.INVITATION_ACCEPTED:
            email = event.payload.get("email", "")
            role = event.payload.get("role", "")
            return RenderedMessage("Invitation accepted", f"{email} joined as {role}")
        return RenderedMessage(t.value, title, link)

    # =========================================================
    # External channels
    # =========================================================
    async def _deliver_email(self, profile: Profile, message: RenderedMessage, event: DomainEvent) -> None:
        body = f"<p>{html.escape(message.body)}</p>"
        if message.link:
            body += f'<p><a href="{html.escape(message.link)}">View request</a></p>'
        try:
            await self.email_sender.send(to=profile.email, subject=message.title, html=body)
        except Exception:
            log.warning(
                "email delivery failed",
                exc_info=True,
                extra={
                    "org_id": event.organization_id,
                    "actor_id": profile.id,
                    "event_type": event.type.value,
                    "channel": "email",
                },
            )

    async def _deliver_sms(
        self,
        db: AsyncSession,
        profile: Profile,
        message: RenderedMessage,
        event: DomainEvent,
    ) -> None:
        extra = {
            "org_id": event.organization_id,
            "actor_id": profile.id,
            "event_type": event.type.value,
            "channel": "sms",
        }
        try:
            allowance = await UsageLimiter(db).check_limit(event.organization_id, ResourceType.SMS)
            if not allowance.allowed:
                log.info("sms skipped: monthly allowance used", extra=extra)
                return

            status_value, error = "sent", None
            try:
                await self.sms_sender.send(to=profile.phone_e164, body=short(f"{message.title}: {message.body}", 160))
            except Exception as exc:
                status_value, error = "failed", str(exc)[:500]
                log.warning("sms delivery failed", exc_info=True, extra=extra)

            db.add(
                SmsLog(
                    organization_id=event.organization_id,
                    recipient_id=profile.id,
                    to_number=profile.phone_e164,
                    event_type=event.type.value,
                    status=status_value,
                    error=error,
                )
            )
            await db.commit()
        except Exception:
            await db.rollback()
            log.warning("sms bookkeeping failed", exc_info=True, extra=extra)

    async def _send_invitation_email(self, event: DomainEvent) -> None:
        to = event.payload.get("email")
        url = event.payload.get("invite_url")
        org_name = event.payload.get("organization_name") or "your organization"
        role = event.payload.get("role", "")
        days = event.payload.get("expires_in_days", 7)
        if not to or not url:
            return

        subject = f"You're invited to join {org_name}"
        body = (
            f"<p>You have been invited to join <strong>{html.escape(org_name)}</strong> "
            f"as a {html.escape(role)}.</p>"
            f'<p><a href="{html.escape(url)}">Accept invitation</a></p>'
            f"<p>This link expires in {days} days.</p>"
        )
        try:
            await self.email_sender.send(to=to, subject=subject, html=body)
        except Exception:
            log.warning(
                "invitation email failed",
                exc_info=True,
                extra={"org_id": event.organization_id, "event_type": event.type.value, "channel": "email"},
            )
