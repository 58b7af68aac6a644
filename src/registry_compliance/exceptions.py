"""
Error taxonomy for registry compliance evaluation.

All errors are contained at single-setting granularity by the evaluator:
- ReadFailure: a registry path or value could not be read (downgraded to absent)
- InvalidValueFormat: declared value cannot be coerced to its registry type
- WriteFailure: the registry rejected a write or delete
- VerificationFailure: the post-remediation re-check still shows drift
"""

from typing import Optional


class RegistryComplianceError(Exception):
    """Base exception for registry compliance errors."""
    pass


class ReadFailure(RegistryComplianceError):
    """Reading a registry key or value failed."""
    pass


class InvalidValueFormat(RegistryComplianceError, ValueError):
    """Declared value cannot be converted to the on-disk representation."""

    def __init__(self, value_type: str, value, reason: str):
        self.value_type = value_type
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {value_type} value {value!r}: {reason}")


class WriteFailure(RegistryComplianceError):
    """Registry write or delete was rejected by the system."""

    def __init__(self, path: str, name: Optional[str], original: OSError):
        self.path = path
        self.name = name
        self.original = original
        target = f"{path}\\{name}" if name else path
        super().__init__(f"Write to {target} failed: {original}")


class VerificationFailure(RegistryComplianceError):
    """Remediation appeared to succeed but the target is still non-compliant."""
    pass
