"""TideGate: scoped role-based authorization, sessions and audit trail."""

__version__ = "0.1.0"
