"""
Compliance Evaluator.

Evaluates one declared setting against one concrete registry root:

    DeleteKey: KeyPresent   -> (remediate) Deleting -> Verified-Absent | Failed
               KeyAbsent    (compliant)
    Delete:    ValuePresent -> (remediate) Deleting -> Verified-Absent | Failed
               ValueAbsent  (compliant)
    Set:       NonCompliant -> (remediate) Writing  -> Verified-Compliant | Failed
               Compliant

Every remediation is followed by a fresh read. Success is decided by that
read, not by the absence of an exception. Failures are contained to the
setting: the result is marked failed and the caller moves on.
"""

import logging
from typing import Optional

from . import values
from .exceptions import RegistryComplianceError, VerificationFailure
from .models import (
    DeleteKeySetting,
    DeleteSetting,
    EvaluationResult,
    RemediationOutcome,
    Scope,
    SetSetting,
    SettingAction,
)
from .registry import join_path

logger = logging.getLogger(__name__)

# Status tokens consumed by the management agent
COMPLIANT = "[COMPLIANT]"
NON_COMPLIANT = "[NON-COMPLIANT]"
REMEDIATED = "[REMEDIATED]"
DELETED = "[DELETED]"
DELETED_KEY = "[DELETED KEY]"
ERROR = "[ERROR]"

REMEDIATION_ERRORS = (RegistryComplianceError, OSError, ValueError)


class ComplianceEvaluator:
    """
    Decide compliance for (root, setting) pairs and optionally remediate.

    Usage:
        evaluator = ComplianceEvaluator(WindowsRegistry(), remediate=True)
        result = evaluator.evaluate("HKLM\\SOFTWARE\\Contoso", setting)
    """

    def __init__(self, registry, remediate: bool = False):
        """
        Initialize evaluator.

        Args:
            registry: Registry adapter (see registry.WindowsRegistry)
            remediate: Correct drift instead of only reporting it
        """
        self.registry = registry
        self.remediate = remediate
        self._handlers = {
            SetSetting: self._evaluate_set,
            DeleteSetting: self._evaluate_delete,
            DeleteKeySetting: self._evaluate_delete_key,
        }

    def evaluate(
        self,
        root: str,
        setting,
        scope: Optional[Scope] = None,
        group: str = "",
    ) -> EvaluationResult:
        """Evaluate one setting under one registry root."""
        handler = self._handlers[type(setting)]
        result = handler(root, setting)
        result.scope = scope
        result.group = group
        logger.info(f"{root}: {result.message}")
        return result

    # -------------------------------------------------------------------------
    # DeleteKey
    # -------------------------------------------------------------------------

    def _evaluate_delete_key(self, root: str, setting: DeleteKeySetting) -> EvaluationResult:
        target = join_path(root, setting.name)

        if not values.key_present(self.registry, target):
            return self._result(setting, target, False, RemediationOutcome.NOT_ATTEMPTED,
                                f"{COMPLIANT} {setting.name} (key not present)")

        if not self.remediate:
            return self._result(setting, target, True, RemediationOutcome.NOT_ATTEMPTED,
                                f"{NON_COMPLIANT} {setting.name} (key exists, should be deleted)")

        try:
            values.delete_key(self.registry, target)
            if values.key_present(self.registry, target):
                raise VerificationFailure("key still present after deletion")
        except REMEDIATION_ERRORS as e:
            return self._failed(setting, target, e)

        logger.info(f"Deleted key {target}")
        return self._result(setting, target, True, RemediationOutcome.SUCCEEDED,
                            f"{DELETED_KEY} {setting.name}")

    # -------------------------------------------------------------------------
    # Delete (value)
    # -------------------------------------------------------------------------

    def _evaluate_delete(self, root: str, setting: DeleteSetting) -> EvaluationResult:
        if not values.value_present(self.registry, root, setting.name):
            return self._result(setting, root, False, RemediationOutcome.NOT_ATTEMPTED,
                                f"{COMPLIANT} {setting.name} (not present)")

        if not self.remediate:
            return self._result(setting, root, True, RemediationOutcome.NOT_ATTEMPTED,
                                f"{NON_COMPLIANT} {setting.name} (exists, should be deleted)")

        try:
            values.delete_value(self.registry, root, setting.name)
            if values.value_present(self.registry, root, setting.name):
                raise VerificationFailure("value still present after deletion")
        except REMEDIATION_ERRORS as e:
            return self._failed(setting, root, e)

        logger.info(f"Deleted value {root}\\{setting.name}")
        return self._result(setting, root, True, RemediationOutcome.SUCCEEDED,
                            f"{DELETED} {setting.name}")

    # -------------------------------------------------------------------------
    # Set
    # -------------------------------------------------------------------------

    def _evaluate_set(self, root: str, setting: SetSetting) -> EvaluationResult:
        current, stored_type = values.read_stored(self.registry, root, setting.name)
        shown = _describe(current, stored_type, setting)

        if values.is_compliant(current, setting.value, setting.type, stored_type):
            return self._result(setting, root, False, RemediationOutcome.NOT_ATTEMPTED,
                                f"{COMPLIANT} {setting.name} = {shown}")

        if not self.remediate:
            return self._result(
                setting, root, True, RemediationOutcome.NOT_ATTEMPTED,
                f"{NON_COMPLIANT} {setting.name} (current: {shown}, expected: {setting.value})"
            )

        try:
            values.write_value(self.registry, root, setting.name, setting.type, setting.value)
            after, after_type = values.read_stored(self.registry, root, setting.name)
            if not values.is_compliant(after, setting.value, setting.type, after_type):
                raise VerificationFailure(
                    f"reads back as {_describe(after, after_type, setting)}, expected {setting.value}"
                )
        except REMEDIATION_ERRORS as e:
            return self._failed(setting, root, e)

        logger.info(f"Remediated {root}\\{setting.name}: {shown} -> {setting.value}")
        return self._result(
            setting, root, True, RemediationOutcome.SUCCEEDED,
            f"{REMEDIATED} {setting.name} (was: {shown}, now: {setting.value})"
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _result(self, setting, path: str, needs_remediation: bool,
                outcome: RemediationOutcome, message: str) -> EvaluationResult:
        return EvaluationResult(
            setting_name=setting.name,
            path=path,
            action=SettingAction(setting.action),
            needs_remediation=needs_remediation,
            remediation_outcome=outcome,
            message=message,
        )

    def _failed(self, setting, path: str, error: Exception) -> EvaluationResult:
        logger.error(f"Remediation of {path} ({setting.name}) failed: {error}")
        result = self._result(setting, path, True, RemediationOutcome.FAILED,
                              f"{ERROR} {setting.name}: {error}")
        result.error = str(error)
        return result


def _describe(current, stored_type, setting: SetSetting) -> str:
    """Render a read value, naming its stored type when it is not the declared one."""
    shown = values.display_current(current)
    if current is not values.ABSENT and stored_type != setting.type:
        shown += f" as {stored_type.value if stored_type else 'unmanaged type'}"
    return shown
