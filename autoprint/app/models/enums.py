"""
Account roles enumeration.

Defines the role types for the campus print service.
"""

import enum


class AccountRole(str, enum.Enum):
    """
    Account role enumeration.

    Roles:
        STUDENT: Uploads documents, pays, and submits print jobs (default role)
        ADMIN: Operates the print queue and verifies payments
    """
    STUDENT = "student"
    ADMIN = "admin"
