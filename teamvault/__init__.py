"""
TeamVault — Multi-tenant versioned file storage with team access control.

Individuals and teams keep files in folder trees; every edit appends a
version, any version can be made active again, and every operation passes
through one ownership/team-membership permission evaluator.
"""

__version__ = "1.0.0"
__all__ = ["accounts", "cli", "db", "documents", "engine", "security", "storage", "teams", "vault"]
