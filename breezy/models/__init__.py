# Models package — import all models here so Alembic can discover them.

from breezy.models.user import User  # noqa: F401
from breezy.models.subscription import Subscription  # noqa: F401
from breezy.models.payment import Payment  # noqa: F401
from breezy.models.webhook_event import WebhookEvent  # noqa: F401
from breezy.models.audit import AuditEvent  # noqa: F401
