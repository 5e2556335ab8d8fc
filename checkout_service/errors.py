"""
errors.py — Exception types for the order submission pipeline

Validation failures and duplicates are not exceptions: the validator returns
collected field errors and the duplicate guard returns a DuplicateCheck value.
The exceptions below only travel inside an integration and are converted to a
DispatchOutcome at its boundary.
"""


class IntegrationError(Exception):
    """A transient failure talking to the ledger or the mail transport."""


class ConfigurationError(IntegrationError):
    """Required credentials or identifiers for an integration are missing."""
