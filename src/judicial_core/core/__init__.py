"""Core domain: models, interfaces, and the services built on them.

Contains:
- models.py         — SQLAlchemy ORM models and enums
- interfaces.py     — Protocol interfaces for repositories and providers
- audit.py          — Hash-chained AuditLog
- pseudonyms.py     — PseudonymDirectory for public judge codes
- authorization.py  — OwnershipGuard and resource descriptors
- decisions.py      — DecisionService (drafting, signing, voiding, verification)
- cases.py          — CaseService (case views, reassignment)
"""

__all__: list[str] = []
