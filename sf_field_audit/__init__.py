"""
sf_field_audit — Deleted-field record audit for Salesforce orgs.

Finds custom fields whose names carry the ``_del`` deletion marker, resolves
each one to the objects that still hold records for it, counts those records
through the ``sf`` CLI, and folds the counts into a cumulative JSON report.

Modules:
- sf_field_audit.query      ``sf`` CLI wrapper and output decoding
- sf_field_audit.pipeline   three-stage concurrent resolution pipeline
- sf_field_audit.storage    export merge and date-bucketed current counts
"""

__version__ = "0.1.0"
