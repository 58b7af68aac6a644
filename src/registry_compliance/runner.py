"""
Run driver.

Resolves concrete registry roots for every configuration group, evaluates
each (root, setting) pair left to right and accumulates a ComplianceReport.
Nothing a single setting does can abort the batch.
"""

import logging
from typing import Callable, List, Optional

from .evaluator import ComplianceEvaluator
from .identities import EvaluationContext
from .models import ComplianceReport, ConfigurationGroup, EvaluationResult, PolicyDocument, Scope
from .registry import MACHINE_HIVE, USERS_HIVE, join_path

logger = logging.getLogger(__name__)

ResultCallback = Callable[[EvaluationResult], None]


def resolve_roots(group: ConfigurationGroup, scope: Scope, context: EvaluationContext) -> List[str]:
    """
    Concrete registry roots for a group.

    Machine scope yields one root under HKLM; User scope yields one root per
    resolved user identity under HKU (none when no identities resolved).
    """
    if scope == Scope.MACHINE:
        return [join_path(MACHINE_HIVE, group.base_path)]
    return [join_path(USERS_HIVE, sid, group.base_path) for sid in context.user_identities]


class ComplianceRunner:
    """
    Evaluate a whole policy document.

    Usage:
        context = EvaluationContext.create(remediate=False, provider=provider)
        runner = ComplianceRunner(WindowsRegistry(), policy, context)
        report = runner.run()
        sys.exit(report.exit_code())
    """

    def __init__(
        self,
        registry,
        policy: PolicyDocument,
        context: EvaluationContext,
        on_result: Optional[ResultCallback] = None,
    ):
        self.policy = policy
        self.context = context
        self.on_result = on_result
        self.evaluator = ComplianceEvaluator(registry, remediate=context.remediate)

    def run(self) -> ComplianceReport:
        mode = "remediation" if self.context.remediate else "detection"
        logger.info(f"Starting registry compliance run ({mode} mode, "
                    f"{self.policy.setting_count} declared settings)")

        report = ComplianceReport(remediate=self.context.remediate)

        for scope in (Scope.USER, Scope.MACHINE):
            groups = self.policy.groups(scope)
            if not groups:
                continue

            if scope == Scope.USER and not self.context.has_users:
                note = "User scope skipped: no user identities resolved"
                logger.warning(note)
                report.notes.append(note)
                continue

            for group in groups:
                self._run_group(group, scope, report)

        logger.info(report.summary_line())
        logger.info(report.status_line())
        return report

    def _run_group(self, group: ConfigurationGroup, scope: Scope, report: ComplianceReport):
        for root in resolve_roots(group, scope, self.context):
            logger.info(f"{scope.value} group '{group.name}' at {root}"
                        + (f": {group.description}" if group.description else ""))
            for setting in group.settings:
                result = self.evaluator.evaluate(root, setting, scope=scope, group=group.name)
                report.add(result)
                if self.on_result is not None:
                    self.on_result(result)
