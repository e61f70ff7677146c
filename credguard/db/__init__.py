"""
Database module - Data persistence and storage components.

Security Considerations:
- Secret columns only ever hold envelopes
- History is append-only
- Rotation completion runs in a single transaction
"""

from credguard.db.database import VaultDatabase
from credguard.db.credentials import CredentialRepository
from credguard.db.history import HistoryStore
from credguard.db.rotations import RotationStore
from credguard.db.settings import PolicySettingsStore

__all__ = [
    "VaultDatabase",
    "CredentialRepository",
    "HistoryStore",
    "RotationStore",
    "PolicySettingsStore",
]
