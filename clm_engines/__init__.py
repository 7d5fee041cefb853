"""
Pure engines: the approval state machine and the snapshot diff engine.

No I/O, no clock, no database.  Services feed them domain values and act on
the results.
"""

from clm_engines.diff import (
    DiffEngine,
    apply_line_diff,
    build_hunks,
    diff,
    myers_diff,
    split_lines,
    summarize,
)
from clm_engines.state_machine import (
    RejectionKind,
    TransitionOutcome,
    allowed_actions,
    available_actions,
    find_transition,
    next_status,
)

__all__ = [
    "DiffEngine",
    "diff",
    "myers_diff",
    "apply_line_diff",
    "build_hunks",
    "split_lines",
    "summarize",
    "RejectionKind",
    "TransitionOutcome",
    "next_status",
    "find_transition",
    "allowed_actions",
    "available_actions",
]
