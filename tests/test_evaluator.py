"""
Tests for the Compliance Evaluator state machine.

Covers Set / Delete / DeleteKey in detection and remediation mode,
write-then-verify, and failure containment.
"""

import logging

import pytest

from registry_compliance.evaluator import ComplianceEvaluator
from registry_compliance.models import (
    DeleteKeySetting,
    DeleteSetting,
    RemediationOutcome,
    Scope,
    SetSetting,
    SettingAction,
    ValueType,
)

ROOT = "HKLM\\SOFTWARE\\Contoso"


@pytest.fixture
def detector(registry):
    return ComplianceEvaluator(registry, remediate=False)


@pytest.fixture
def remediator(registry):
    return ComplianceEvaluator(registry, remediate=True)


# =============================================================================
# Set
# =============================================================================

class TestSet:
    def test_compliant(self, registry, detector):
        registry.put(ROOT, "BlogURL", "https://x", ValueType.STRING)
        setting = SetSetting(name="BlogURL", type=ValueType.STRING, value="https://x")

        result = detector.evaluate(ROOT, setting, scope=Scope.MACHINE, group="Blog")

        assert result.message.startswith("[COMPLIANT] BlogURL")
        assert result.needs_remediation is False
        assert result.remediation_outcome == RemediationOutcome.NOT_ATTEMPTED
        assert result.action == SettingAction.SET
        assert result.scope == Scope.MACHINE
        assert result.group == "Blog"

    def test_status_line_logged(self, registry, detector, caplog):
        caplog.set_level(logging.INFO, logger="registry_compliance.evaluator")
        registry.put(ROOT, "BlogURL", "https://x", ValueType.STRING)

        detector.evaluate(ROOT, SetSetting(name="BlogURL", type=ValueType.STRING, value="https://x"))

        assert "[COMPLIANT] BlogURL = https://x" in caplog.text

    def test_absent_reported_not_set(self, detector):
        setting = SetSetting(name="AwesomeLevel", type=ValueType.DWORD, value=100)

        result = detector.evaluate(ROOT, setting)

        assert result.needs_remediation is True
        assert result.message.startswith("[NON-COMPLIANT] AwesomeLevel")
        assert "not set" in result.message
        assert result.remediation_outcome == RemediationOutcome.NOT_ATTEMPTED

    def test_detection_never_writes(self, registry, detector):
        setting = SetSetting(name="AwesomeLevel", type=ValueType.DWORD, value=100)
        detector.evaluate(ROOT, setting)
        assert registry.key_exists(ROOT) is False

    def test_remediation_writes_and_verifies(self, registry, remediator):
        setting = SetSetting(name="AwesomeLevel", type=ValueType.DWORD, value=100)

        result = remediator.evaluate(ROOT, setting)

        assert result.message.startswith("[REMEDIATED] AwesomeLevel")
        assert result.needs_remediation is True
        assert result.remediation_outcome == RemediationOutcome.SUCCEEDED
        assert registry.get(ROOT, "AwesomeLevel") == 100

    def test_remediation_is_idempotent(self, remediator):
        setting = SetSetting(name="Servers", type=ValueType.MULTI_STRING, value="A|B")

        first = remediator.evaluate(ROOT, setting)
        second = remediator.evaluate(ROOT, setting)

        assert first.remediation_outcome == RemediationOutcome.SUCCEEDED
        assert second.message.startswith("[COMPLIANT] Servers")
        assert second.needs_remediation is False

    def test_wrong_value_replaced(self, registry, remediator):
        registry.put(ROOT, "Blob", b"\x00", ValueType.BINARY)
        setting = SetSetting(name="Blob", type=ValueType.BINARY, value="3c,00,ff")

        result = remediator.evaluate(ROOT, setting)

        assert result.remediation_outcome == RemediationOutcome.SUCCEEDED
        assert registry.get(ROOT, "Blob") == b"\x3c\x00\xff"

    def test_write_failure_marks_failed(self, registry, remediator):
        registry.fail("set_value", PermissionError(13, "Access is denied"))
        setting = SetSetting(name="Level", type=ValueType.DWORD, value=1)

        result = remediator.evaluate(ROOT, setting)

        assert result.message.startswith("[ERROR] Level")
        assert result.remediation_outcome == RemediationOutcome.FAILED
        assert "Access is denied" in result.error

    def test_invalid_value_marks_failed(self, remediator):
        setting = SetSetting(name="Blob", type=ValueType.BINARY, value="3c,zz")

        result = remediator.evaluate(ROOT, setting)

        assert result.remediation_outcome == RemediationOutcome.FAILED
        assert "Invalid Binary value" in result.error

    def test_overwritten_after_write_fails_verification(self, registry, remediator):
        def other_agent(reg, path, name):
            reg.put(path, name, 0, ValueType.DWORD)

        registry.on_set = other_agent
        setting = SetSetting(name="Level", type=ValueType.DWORD, value=1)

        result = remediator.evaluate(ROOT, setting)

        assert result.remediation_outcome == RemediationOutcome.FAILED
        assert "reads back as 0" in result.error


# =============================================================================
# Delete
# =============================================================================

class TestDelete:
    def test_absent_value_compliant(self, registry, detector):
        registry.create_key(ROOT)
        result = detector.evaluate(ROOT, DeleteSetting(name="PreventInstallationFromMsi"))
        assert result.message.startswith("[COMPLIANT] PreventInstallationFromMsi")
        assert result.needs_remediation is False

    def test_missing_key_compliant(self, detector):
        result = detector.evaluate(ROOT, DeleteSetting(name="PreventInstallationFromMsi"))
        assert result.needs_remediation is False

    def test_present_value_detection(self, registry, detector):
        registry.put(ROOT, "PreventInstallationFromMsi", 1, ValueType.DWORD)

        result = detector.evaluate(ROOT, DeleteSetting(name="PreventInstallationFromMsi"))

        assert result.message == "[NON-COMPLIANT] PreventInstallationFromMsi (exists, should be deleted)"
        assert result.needs_remediation is True
        assert registry.get(ROOT, "PreventInstallationFromMsi") == 1

    def test_present_value_remediated(self, registry, remediator):
        registry.put(ROOT, "PreventInstallationFromMsi", 1, ValueType.DWORD)
        registry.put(ROOT, "Other", 2, ValueType.DWORD)

        result = remediator.evaluate(ROOT, DeleteSetting(name="PreventInstallationFromMsi"))

        assert result.message == "[DELETED] PreventInstallationFromMsi"
        assert result.remediation_outcome == RemediationOutcome.SUCCEEDED
        assert registry.value_names(ROOT) == ["Other"]

    def test_delete_failure_reported(self, registry, remediator):
        registry.put(ROOT, "Flag", 1, ValueType.DWORD)
        registry.fail("delete_value", PermissionError(13, "Access is denied"))

        result = remediator.evaluate(ROOT, DeleteSetting(name="Flag"))

        assert result.message.startswith("[ERROR] Flag")
        assert result.remediation_outcome == RemediationOutcome.FAILED


# =============================================================================
# DeleteKey
# =============================================================================

class TestDeleteKey:
    def test_absent_key_never_removed(self, registry, remediator):
        result = remediator.evaluate("HKLM\\SOFTWARE", DeleteKeySetting(name="OldVendor"))

        assert result.message.startswith("[COMPLIANT] OldVendor")
        assert result.remediation_outcome == RemediationOutcome.NOT_ATTEMPTED
        assert not any(op == "delete_tree" for op, _ in registry.calls)

    def test_present_key_detection(self, registry, detector):
        registry.create_key("HKLM\\SOFTWARE\\OldVendor")

        result = detector.evaluate("HKLM\\SOFTWARE", DeleteKeySetting(name="OldVendor"))

        assert result.needs_remediation is True
        assert result.message.startswith("[NON-COMPLIANT] OldVendor")
        assert result.path == "HKLM\\SOFTWARE\\OldVendor"

    def test_removes_whole_subtree(self, registry, remediator):
        registry.put("HKLM\\SOFTWARE\\OldVendor\\App\\Deep", "x", "y", ValueType.STRING)
        registry.create_key("HKLM\\SOFTWARE\\Keep")

        result = remediator.evaluate("HKLM\\SOFTWARE", DeleteKeySetting(name="OldVendor"))

        assert result.message == "[DELETED KEY] OldVendor"
        assert result.remediation_outcome == RemediationOutcome.SUCCEEDED
        assert registry.key_exists("HKLM\\SOFTWARE\\OldVendor\\App") is False
        assert registry.key_exists("HKLM\\SOFTWARE\\Keep") is True

    def test_key_surviving_delete_fails_verification(self, registry, remediator, monkeypatch):
        registry.create_key("HKLM\\SOFTWARE\\OldVendor")
        monkeypatch.setattr(registry, "delete_tree", lambda path: None)

        result = remediator.evaluate("HKLM\\SOFTWARE", DeleteKeySetting(name="OldVendor"))

        assert result.remediation_outcome == RemediationOutcome.FAILED
        assert "still present" in result.error


# =============================================================================
# Stored type
# =============================================================================

class TestStoredType:
    @pytest.mark.parametrize("stored,declared_type,text", [
        (ValueType.STRING, ValueType.BINARY, "3c,00"),
        (ValueType.STRING, ValueType.MULTI_STRING, "A|B"),
        (ValueType.STRING, ValueType.EXPAND_STRING, "%TEMP%\\x"),
        (ValueType.EXPAND_STRING, ValueType.STRING, "plain"),
    ])
    def test_same_text_other_type_not_compliant(self, registry, detector,
                                                stored, declared_type, text):
        registry.put(ROOT, "V", text, stored)
        setting = SetSetting(name="V", type=declared_type, value=text)

        result = detector.evaluate(ROOT, setting)

        assert result.needs_remediation is True
        assert result.message.startswith("[NON-COMPLIANT] V")
        assert f"as {stored.value}" in result.message

    def test_numeric_string_for_dword_not_compliant(self, registry, detector):
        registry.put(ROOT, "Level", "100", ValueType.STRING)
        setting = SetSetting(name="Level", type=ValueType.DWORD, value=100)

        assert detector.evaluate(ROOT, setting).needs_remediation is True

    def test_unmanaged_type_not_compliant(self, registry, detector):
        registry.put(ROOT, "Odd", "x", None)
        setting = SetSetting(name="Odd", type=ValueType.STRING, value="x")

        result = detector.evaluate(ROOT, setting)

        assert result.needs_remediation is True
        assert "unmanaged type" in result.message

    def test_remediation_rewrites_with_declared_type(self, registry, remediator):
        registry.put(ROOT, "Blob", "3c,00", ValueType.STRING)
        setting = SetSetting(name="Blob", type=ValueType.BINARY, value="3c,00")

        result = remediator.evaluate(ROOT, setting)
        again = remediator.evaluate(ROOT, setting)

        assert result.remediation_outcome == RemediationOutcome.SUCCEEDED
        assert registry.get(ROOT, "Blob") == b"\x3c\x00"
        assert again.message.startswith("[COMPLIANT] Blob")

    def test_retyped_after_write_fails_verification(self, registry, remediator):
        def other_agent(reg, path, name):
            reg.put(path, name, "A|B", ValueType.STRING)

        registry.on_set = other_agent
        setting = SetSetting(name="Servers", type=ValueType.MULTI_STRING, value="A|B")

        result = remediator.evaluate(ROOT, setting)

        assert result.remediation_outcome == RemediationOutcome.FAILED
        assert "reads back as A|B as String" in result.error


# =============================================================================
# Declared values that cannot be coerced
# =============================================================================

class TestUncoercibleValues:
    @pytest.mark.parametrize("value_type,value", [
        (ValueType.DWORD, 1.5),
        (ValueType.STRING, None),
        (ValueType.BINARY, 12),
        (ValueType.MULTI_STRING, None),
    ])
    def test_detection_reports_non_compliant(self, detector, value_type, value):
        result = detector.evaluate(ROOT, SetSetting(name="V", type=value_type, value=value))

        assert result.needs_remediation is True
        assert result.remediation_outcome == RemediationOutcome.NOT_ATTEMPTED

    @pytest.mark.parametrize("value_type,value", [
        (ValueType.DWORD, 1.5),
        (ValueType.STRING, None),
    ])
    def test_remediation_fails_only_this_setting(self, registry, remediator,
                                                 value_type, value):
        result = remediator.evaluate(ROOT, SetSetting(name="V", type=value_type, value=value))

        assert result.message.startswith("[ERROR] V")
        assert result.remediation_outcome == RemediationOutcome.FAILED
        assert registry.get(ROOT, "V") is None

    def test_float_string_written_verbatim(self, registry, remediator):
        setting = SetSetting(name="Version", type=ValueType.STRING, value=1.0)

        result = remediator.evaluate(ROOT, setting)

        assert result.remediation_outcome == RemediationOutcome.SUCCEEDED
        assert registry.get(ROOT, "Version") == "1.0"
