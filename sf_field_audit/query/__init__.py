"""
sf_field_audit.query — Boundary to the Salesforce `sf` CLI.

Modules:
    executor  — SalesforceCLI: template loading, process execution, counts.
    decoder   — CSV extraction, row decoding, JSON count parsing.

Query templates live in query/soql/*.soql; ``#`` marks the parameter slot.
"""
