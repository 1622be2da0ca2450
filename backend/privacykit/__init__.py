"""PrivacyKit: expiring short links."""

__version__ = "1.0.0"
