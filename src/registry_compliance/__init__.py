"""Registry Compliance Agent - Windows registry drift detection and remediation"""

__version__ = "0.1.0"

from .exceptions import (
    RegistryComplianceError,
    ReadFailure,
    InvalidValueFormat,
    WriteFailure,
    VerificationFailure,
)
from .models import (
    ValueType,
    SettingAction,
    Scope,
    RemediationOutcome,
    SetSetting,
    DeleteSetting,
    DeleteKeySetting,
    ConfigurationGroup,
    PolicyDocument,
    EvaluationResult,
    ComplianceReport,
)
from .values import ABSENT, read_stored, read_value, write_value, is_compliant, display_current
from .evaluator import ComplianceEvaluator
from .identities import EvaluationContext, filter_identities, static_provider
from .runner import ComplianceRunner, resolve_roots
from .policy import load_policy, parse_policy
from .registry import WindowsRegistry

__all__ = [
    # Version
    "__version__",

    # Errors
    "RegistryComplianceError",
    "ReadFailure",
    "InvalidValueFormat",
    "WriteFailure",
    "VerificationFailure",

    # Declared state
    "ValueType",
    "SettingAction",
    "Scope",
    "SetSetting",
    "DeleteSetting",
    "DeleteKeySetting",
    "ConfigurationGroup",
    "PolicyDocument",
    "load_policy",
    "parse_policy",

    # Value layer
    "ABSENT",
    "read_stored",
    "read_value",
    "write_value",
    "is_compliant",
    "display_current",

    # Evaluation
    "ComplianceEvaluator",
    "EvaluationContext",
    "filter_identities",
    "static_provider",
    "ComplianceRunner",
    "resolve_roots",
    "RemediationOutcome",
    "EvaluationResult",
    "ComplianceReport",

    # Native adapter
    "WindowsRegistry",
]
