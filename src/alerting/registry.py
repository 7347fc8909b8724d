"""Id-indexed registries for alert rules and escalation policies."""

import logging
from typing import Dict, List, Optional

from src.alerting.models import AlertRule, EscalationPolicy

logger = logging.getLogger(__name__)


class RuleRegistry:
    """Holds alert rules keyed by id.

    The evaluation loop works from ``snapshot()`` so edits made while a
    tick is running take effect on the next tick.
    """

    def __init__(self) -> None:
        self._rules: Dict[str, AlertRule] = {}

    def add(self, rule: AlertRule) -> None:
        """Validate and register a rule, replacing any rule with the same id.

        Raises:
            ConfigurationError: If the rule is malformed.
        """
        rule.validate()
        replaced = rule.id in self._rules
        self._rules[rule.id] = rule
        logger.info(
            "%s alert rule: %s (%s)", "Replaced" if replaced else "Added", rule.id, rule.name
        )

    def remove(self, rule_id: str) -> bool:
        removed = self._rules.pop(rule_id, None) is not None
        if removed:
            logger.info("Removed alert rule: %s", rule_id)
        return removed

    def toggle(self, rule_id: str, enabled: bool) -> bool:
        rule = self._rules.get(rule_id)
        if rule is None:
            return False
        rule.enabled = enabled
        logger.info("Alert rule %s %s", rule_id, "enabled" if enabled else "disabled")
        return True

    def get(self, rule_id: str) -> Optional[AlertRule]:
        return self._rules.get(rule_id)

    def all(self) -> List[AlertRule]:
        return list(self._rules.values())

    def snapshot(self) -> List[AlertRule]:
        """Enabled rules at this instant."""
        return [r for r in self._rules.values() if r.enabled]

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules


class PolicyRegistry:
    """Holds escalation policies keyed by id."""

    def __init__(self) -> None:
        self._policies: Dict[str, EscalationPolicy] = {}

    def add(self, policy: EscalationPolicy) -> None:
        """Validate and register an escalation policy.

        Raises:
            ConfigurationError: If the policy is malformed.
        """
        policy.validate()
        self._policies[policy.id] = policy
        logger.info("Added escalation policy: %s (%s)", policy.id, policy.name)

    def remove(self, policy_id: str) -> bool:
        removed = self._policies.pop(policy_id, None) is not None
        if removed:
            logger.info("Removed escalation policy: %s", policy_id)
        return removed

    def get(self, policy_id: str) -> Optional[EscalationPolicy]:
        return self._policies.get(policy_id)

    def all(self) -> List[EscalationPolicy]:
        return list(self._policies.values())

    def enabled(self) -> List[EscalationPolicy]:
        return [p for p in self._policies.values() if p.enabled]

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, policy_id: str) -> bool:
        return policy_id in self._policies
