# SQLModel definitions, imported here so SQLModel.metadata is complete for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .company import Company  # noqa: F401
from .user import User  # noqa: F401
from .project import Project  # noqa: F401
from .access_grant import AccessGrant  # noqa: F401
from .project_membership import ProjectMembership  # noqa: F401
from .subscription_plan import SubscriptionPlan  # noqa: F401
from .subscription import Subscription  # noqa: F401
from .signup_request import SignupRequest  # noqa: F401
