# Models package: import all models here so Alembic can discover them.

from datetime import date, datetime

from sqlalchemy import inspect

from altleads.models.user import AuthUser, User  # noqa: F401
from altleads.models.prospect import Prospect  # noqa: F401
from altleads.models.disposition import Disposition, DispositionType  # noqa: F401
from altleads.models.rtne import (  # noqa: F401
    CreditLog,
    EnrichmentJob,
    MasterProspect,
    Project,
    ProjectProspect,
    ProjectUser,
    RtneRequest,
)
from altleads.models.audit import AuditLog  # noqa: F401
from altleads.models.notification import Notification  # noqa: F401
from altleads.models.chrome_extension import (  # noqa: F401
    ChromeExtensionUser,
    ChromeProspect,
)
from altleads.models.lusha import LushaApiKey  # noqa: F401
from altleads.models.sim import (  # noqa: F401
    SimAgent,
    SimAuditLog,
    SimCard,
    SimDeactivation,
    SimSpamHistory,
)

# Never leave the process in a payload.
SECRET_COLUMNS = {"password_hash", "key_value"}


def as_dict(obj, exclude=()):
    """Column values of a model instance keyed by column name, JSON-ready."""
    out = {}
    for attr in inspect(obj).mapper.column_attrs:
        name = attr.columns[0].name
        if name in SECRET_COLUMNS or name in exclude:
            continue
        value = getattr(obj, attr.key)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[name] = value
    return out
