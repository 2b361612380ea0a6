"""
Privileges Kernel

Persistence and state machine for clinical privilege requests:
- Role-ordered approval levels
- Per-privilege grant/deny decisions
- Upserted approval records (one per approver per request)
- Atomic, serialized request transitions
- Full auditability via hash chain
"""

__version__ = "0.1.0"
