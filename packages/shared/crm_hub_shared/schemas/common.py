"""
Enums and small shared models used across the CRM Hub API.
"""

from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    COMPANY_ADMIN = "company_admin"
    MANAGER = "manager"
    STAFF = "staff"
    READONLY = "readonly"


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class CompanyStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class CompanySubscriptionStatus(str, Enum):
    NONE = "none"
    APPROVED = "approved"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class GrantStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    EXPIRED = "expired"


# Subscriptions in these states keep a plan from being deleted
LIVE_SUBSCRIPTION_STATUSES: list[SubscriptionStatus] = [
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
]


class PlanInterval(str, Enum):
    MONTH = "month"
    YEAR = "year"


class IntegrationType(str, Enum):
    API = "api"
    IFRAME = "iframe"
    HYBRID = "hybrid"


class SignupStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Pagination(BaseModel):
    page: int
    per_page: int
    total: int
    total_pages: int
