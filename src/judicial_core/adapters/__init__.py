"""Adapters — persistence and external integrations for judicial-core.

Contains:
- database.py      — Primary DB engine, session factory and request session
- repositories.py  — SQLAlchemy repositories for the primary DB
- audit_wall.py    — Separate audit DB session and AuditEventRepository
- signing.py       — Ed25519 key-directory signing provider
- artifacts.py     — JSON artifact renderer and filesystem artifact store
"""

__all__: list[str] = []
