"""
sf_field_audit.storage — Persisted audit state.

Modules:
    export  — Load, merge and atomically rewrite the cumulative JSON export,
              recomputing the date-bucketed current counts on every run.
"""
