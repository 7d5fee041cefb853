"""
Contract Lifecycle Kernel

The core beneath the contract lifecycle application:
- Role-gated approval state machine with escalation
- Append-only, hash-verified contract version history
- Structured field and line-level changelogs
- Hash-chained audit trail
"""

__version__ = "0.1.0"
