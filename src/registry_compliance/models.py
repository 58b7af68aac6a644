"""
Data models for registry compliance.

Declared state (policy input) is validated with pydantic once at load time.
Evaluation output is plain dataclasses, created per (root, setting) pair and
aggregated into a run-scoped ComplianceReport.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enumerations
# ============================================================================


class ValueType(str, Enum):
    """Registry value types supported by Set settings."""
    STRING = "String"
    EXPAND_STRING = "ExpandString"
    DWORD = "DWord"
    QWORD = "QWord"
    BINARY = "Binary"
    MULTI_STRING = "MultiString"

    @classmethod
    def parse(cls, raw: Any) -> "ValueType":
        """Case-insensitive lookup (``dword`` and ``DWORD`` both resolve)."""
        if isinstance(raw, cls):
            return raw
        for member in cls:
            if str(raw).strip().lower() == member.value.lower():
                return member
        raise ValueError(f"unknown registry value type: {raw!r}")


class SettingAction(str, Enum):
    """What a declared setting asks for."""
    SET = "Set"
    DELETE = "Delete"
    DELETE_KEY = "DeleteKey"


class Scope(str, Enum):
    """Whether a configuration group applies per user or machine-wide."""
    USER = "User"
    MACHINE = "Machine"


class RemediationOutcome(str, Enum):
    """Result of a remediation attempt."""
    NOT_ATTEMPTED = "not_attempted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ACTION_NAMES = {action.value.lower(): action.value for action in SettingAction}

HIVE_NAMES = {
    "hklm", "hkey_local_machine", "hku", "hkey_users",
    "hkcu", "hkey_current_user", "hkcr", "hkey_classes_root",
}


# ============================================================================
# Declared Settings (tagged variant on ``action``)
# ============================================================================


class SetSetting(BaseModel):
    """Ensure a named value exists with the declared type and value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Literal["Set"] = "Set"
    name: str = Field(..., description="Value name under the base path")
    type: ValueType = Field(..., description="Registry value type")
    # Kept exactly as loaded; coercion happens at write time so a bad value
    # fails only its own setting.
    value: Any = Field(
        ...,
        description="Declared logical value (shape depends on type)"
    )

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v):
        return ValueType.parse(v)


class DeleteSetting(BaseModel):
    """Ensure a named value does not exist."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Literal["Delete"] = "Delete"
    name: str = Field(..., description="Value name under the base path")


class DeleteKeySetting(BaseModel):
    """Ensure a subkey (and everything below it) does not exist."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Literal["DeleteKey"] = "DeleteKey"
    name: str = Field(..., description="Subkey name relative to the base path")


DeclaredSetting = Annotated[
    Union[SetSetting, DeleteSetting, DeleteKeySetting],
    Field(discriminator="action"),
]


def normalize_setting(raw: Any) -> Any:
    """
    Prepare one raw setting mapping for discriminated validation.

    Keys are matched case-insensitively, a missing action defaults to Set,
    and type/value are dropped for Delete and DeleteKey where they carry
    no meaning.
    """
    if not isinstance(raw, dict):
        return raw

    data = {str(k).lower(): v for k, v in raw.items()}
    action = str(data.get("action") or "Set")
    data["action"] = _ACTION_NAMES.get(action.lower(), action)

    if data["action"] != SettingAction.SET.value:
        data.pop("type", None)
        data.pop("value", None)

    return data


# ============================================================================
# Configuration Groups / Policy
# ============================================================================


class ConfigurationGroup(BaseModel):
    """A named bundle of settings sharing one base path and scope."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = Field(..., description="Group name (reporting only)")
    description: str = Field(default="", description="Group description (reporting only)")
    base_path: str = Field(
        ...,
        validation_alias=AliasChoices("base_path", "basePath", "BasePath"),
        description="Scope-relative registry path (no hive segment)"
    )
    settings: List[DeclaredSetting] = Field(default_factory=list)

    @field_validator("base_path")
    @classmethod
    def validate_base_path(cls, v):
        path = v.replace("/", "\\").strip("\\")
        if not path:
            raise ValueError("base_path must not be empty")
        first = path.split("\\", 1)[0].lower()
        if first in HIVE_NAMES:
            raise ValueError(f"base_path must be scope-relative, got hive segment: {first}")
        return path

    @field_validator("settings", mode="before")
    @classmethod
    def normalize_settings(cls, v):
        if isinstance(v, list):
            return [normalize_setting(item) for item in v]
        return v


class PolicyDocument(BaseModel):
    """Declared registry state partitioned by scope."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    user_settings: List[ConfigurationGroup] = Field(
        default_factory=list,
        validation_alias=AliasChoices("user_settings", "userSettings", "UserSettings"),
    )
    machine_settings: List[ConfigurationGroup] = Field(
        default_factory=list,
        validation_alias=AliasChoices("machine_settings", "machineSettings", "MachineSettings"),
    )

    def groups(self, scope: Scope) -> List[ConfigurationGroup]:
        """Groups for one scope, in declaration order."""
        if scope == Scope.USER:
            return list(self.user_settings)
        return list(self.machine_settings)

    @property
    def setting_count(self) -> int:
        return sum(len(g.settings) for g in self.user_settings + self.machine_settings)


# ============================================================================
# Evaluation Output
# ============================================================================


@dataclass
class EvaluationResult:
    """Outcome of evaluating one declared setting against one registry root."""
    setting_name: str
    path: str
    action: SettingAction
    needs_remediation: bool
    remediation_outcome: RemediationOutcome
    message: str
    scope: Optional[Scope] = None
    group: str = ""
    error: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def compliant(self) -> bool:
        return not self.needs_remediation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "setting_name": self.setting_name,
            "path": self.path,
            "action": self.action.value,
            "needs_remediation": self.needs_remediation,
            "remediation_outcome": self.remediation_outcome.value,
            "message": self.message,
            "scope": self.scope.value if self.scope else None,
            "group": self.group,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class ComplianceReport:
    """Run-scoped, append-only collection of evaluation results."""
    remediate: bool
    results: List[EvaluationResult] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    started_at: str = ""

    def __post_init__(self):
        if not self.started_at:
            self.started_at = datetime.now(timezone.utc).isoformat()

    def add(self, result: EvaluationResult):
        self.results.append(result)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def non_compliant(self) -> int:
        return sum(1 for r in self.results if r.needs_remediation)

    @property
    def compliant(self) -> int:
        return self.total - self.non_compliant

    @property
    def remediated(self) -> int:
        return sum(1 for r in self.results
                   if r.remediation_outcome == RemediationOutcome.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results
                   if r.remediation_outcome == RemediationOutcome.FAILED)

    @property
    def status(self) -> str:
        if self.remediate:
            return "FAILED" if self.failed else "SUCCESS"
        return "NON-COMPLIANT" if self.non_compliant else "COMPLIANT"

    def exit_code(self) -> int:
        """0 when nothing is left to fix, 1 on failed remediation or remaining drift."""
        return 1 if self.status in ("FAILED", "NON-COMPLIANT") else 0

    def summary_line(self) -> str:
        line = (f"Summary: {self.total} settings evaluated, "
                f"{self.compliant} compliant, {self.non_compliant} non-compliant")
        if self.remediate:
            line += f", {self.remediated} remediated, {self.failed} failed"
        return line

    def status_line(self) -> str:
        return f"[REGISTRYMGMT] {self.status}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": "remediate" if self.remediate else "detect",
            "started_at": self.started_at,
            "status": self.status,
            "exit_code": self.exit_code(),
            "total": self.total,
            "compliant": self.compliant,
            "non_compliant": self.non_compliant,
            "remediated": self.remediated,
            "failed": self.failed,
            "notes": list(self.notes),
            "results": [r.to_dict() for r in self.results],
        }
