"""
Controlled vocabulary for the Sales Pipeline CRM.
Locked values for dropdowns and validation. Stored values are lowercase keys;
labels are display-only.
"""

from enum import Enum


class CompanySize(str, Enum):
    """Size category of a client company."""
    STARTUP = "startup"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"

    @classmethod
    def choices(cls) -> list:
        return [e.value for e in cls]

    @classmethod
    def display_labels(cls) -> dict:
        return {
            cls.STARTUP.value: "Startup",
            cls.SMALL.value: "Small",
            cls.MEDIUM.value: "Medium",
            cls.LARGE.value: "Large",
            cls.ENTERPRISE.value: "Enterprise",
        }


class RelationshipStatus(str, Enum):
    """Where the client stands in the account lifecycle."""
    PROSPECT = "prospect"
    ACTIVE = "active"
    RENEWAL = "renewal"
    INACTIVE = "inactive"
    CHURNED = "churned"

    @classmethod
    def choices(cls) -> list:
        return [e.value for e in cls]

    @classmethod
    def display_labels(cls) -> dict:
        return {
            cls.PROSPECT.value: "Prospect",
            cls.ACTIVE.value: "Active",
            cls.RENEWAL.value: "Renewal",
            cls.INACTIVE.value: "Inactive",
            cls.CHURNED.value: "Churned",
        }


class AccountHealth(str, Enum):
    """Account manager's read on the client relationship."""
    EXCELLENT = "excellent"
    HEALTHY = "healthy"
    AT_RISK = "at_risk"
    CRITICAL = "critical"

    @classmethod
    def choices(cls) -> list:
        return [e.value for e in cls]

    @classmethod
    def display_labels(cls) -> dict:
        return {
            cls.EXCELLENT.value: "Excellent",
            cls.HEALTHY.value: "Healthy",
            cls.AT_RISK.value: "At Risk",
            cls.CRITICAL.value: "Critical",
        }


class ActivityType(str, Enum):
    """Audit entries appended to sales_activities."""
    STAGE_CHANGE = "stage_change"
    NOTE = "note"


class InteractionType(str, Enum):
    """Audit entries appended to client_interactions."""
    NOTE = "note"


class InteractionOutcome(str, Enum):
    POSITIVE = "positive"


# Tables the CRM reads and writes. Nothing else is reachable through db.py.
OPPORTUNITIES_TABLE = "sales_opportunities"
CLIENTS_TABLE = "clients"
TEAM_MEMBERS_TABLE = "team_members"
SALES_ACTIVITIES_TABLE = "sales_activities"
CLIENT_INTERACTIONS_TABLE = "client_interactions"

TABLES = (
    OPPORTUNITIES_TABLE,
    CLIENTS_TABLE,
    TEAM_MEMBERS_TABLE,
    SALES_ACTIVITIES_TABLE,
    CLIENT_INTERACTIONS_TABLE,
)
