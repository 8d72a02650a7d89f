import uuid

from sqlalchemy import Boolean, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from maintdesk.db.base import Base

EVENT_KINDS = ("new_request", "assignment", "status_update", "comment", "emergency")
CHANNELS = ("in_app", "email", "sms")


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )

    in_app_new_request: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    in_app_assignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    in_app_status_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    in_app_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # emergencies always land in-app; the flag is kept for a uniform shape
    in_app_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    email_new_request: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_assignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_status_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    sms_new_request: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sms_assignment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sms_status_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sms_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sms_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def enabled(self, channel: str, kind: str) -> bool:
        return bool(getattr(self, f"{channel}_{kind}"))

    @classmethod
    def defaults(cls, profile_id: uuid.UUID) -> "NotificationPreference":
        # Column defaults only apply on flush; fill them in for unsaved rows.
        values = {}
        for channel in CHANNELS:
            for kind in EVENT_KINDS:
                values[f"{channel}_{kind}"] = channel != "sms"
        return cls(profile_id=profile_id, **values)
