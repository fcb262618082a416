from __future__ import annotations


class AdminPanelError(Exception):
    """Base error for adminpanel."""


class DatabaseError(AdminPanelError):
    """Database layer failure."""


class TokenDecodeError(AdminPanelError):
    """Access token is malformed, expired, or signed with another key."""


class MailDeliveryError(AdminPanelError):
    """Mail sender could not hand the message off for delivery."""


class SeedError(AdminPanelError):
    """Catalog seeding found an inconsistent database state."""
