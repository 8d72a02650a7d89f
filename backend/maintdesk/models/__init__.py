# Import models here so Alembic can discover metadata.
from maintdesk.models.organization import Organization  # noqa: F401
from maintdesk.models.profile import Profile  # noqa: F401
from maintdesk.models.notification_preference import NotificationPreference  # noqa: F401

# Properties and requests
from maintdesk.models.property import Property  # noqa: F401
from maintdesk.models.unit import Unit  # noqa: F401
from maintdesk.models.maintenance_request import MaintenanceRequest  # noqa: F401
from maintdesk.models.request_comment import RequestComment  # noqa: F401

# Onboarding, notifications, audit
from maintdesk.models.invitation import Invitation  # noqa: F401
from maintdesk.models.notification import Notification  # noqa: F401
from maintdesk.models.activity_log import ActivityLog  # noqa: F401
from maintdesk.models.sms_log import SmsLog  # noqa: F401
