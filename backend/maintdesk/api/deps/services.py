"""
Per-request service wiring.

Handlers get fully constructed services; the event publisher hands every
committed domain event to NotificationFanout as a background task, which runs
after the response with its own session.
"""
from __future__ import annotations

from fastapi import BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from maintdesk.core.config import settings
from maintdesk.db.session import get_db, get_session_factory
from maintdesk.services.events import DomainEvent, EventPublisher
from maintdesk.services.invitations import InvitationService
from maintdesk.services.notification_fanout import NotificationFanout
from maintdesk.services.request_lifecycle import RequestLifecycle
from maintdesk.services.transports import EmailSender, SmsSender, build_email_sender, build_sms_sender
from maintdesk.services.usage_limiter import UsageLimiter


class BackgroundEventPublisher:
    def __init__(self, background_tasks: BackgroundTasks, fanout: NotificationFanout) -> None:
        self.background_tasks = background_tasks
        self.fanout = fanout

    def publish(self, event: DomainEvent) -> None:
        self.background_tasks.add_task(self.fanout.dispatch, event)


def get_email_sender() -> EmailSender:
    return build_email_sender(settings)


def get_sms_sender() -> SmsSender:
    return build_sms_sender(settings)


def get_notification_fanout(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    email_sender: EmailSender = Depends(get_email_sender),
    sms_sender: SmsSender = Depends(get_sms_sender),
) -> NotificationFanout:
    return NotificationFanout(session_factory, email_sender, sms_sender, app_url=settings.APP_URL)


def get_event_publisher(
    background_tasks: BackgroundTasks,
    fanout: NotificationFanout = Depends(get_notification_fanout),
) -> EventPublisher:
    return BackgroundEventPublisher(background_tasks, fanout)


def get_request_lifecycle(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> RequestLifecycle:
    return RequestLifecycle(db, publisher)


def get_invitation_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> InvitationService:
    return InvitationService(db, publisher)


def get_usage_limiter(db: AsyncSession = Depends(get_db)) -> UsageLimiter:
    return UsageLimiter(db)
