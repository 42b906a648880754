"""
Contextual rule set for the Access Policy Service.
"""

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from shared.logging import get_logger

from .models import AccessContext, AccessRequest, ContextualRule, RuleEffect

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


@dataclass
class RuleSetOutcome:
    """Result of scanning the contextual rules for one request."""
    rule: Optional[ContextualRule] = None
    consulted: List[str] = field(default_factory=list)

    @property
    def has_verdict(self) -> bool:
        return self.rule is not None

    @property
    def allowed(self) -> bool:
        return self.rule is not None and self.rule.effect == RuleEffect.ALLOW


class ContextualRuleSet:
    """Rules ordered by descending priority, then registration order."""

    def __init__(self, rules: Optional[List[ContextualRule]] = None,
                 metrics: Optional["MetricsCollector"] = None):
        self.logger = get_logger("policy.contextual_rules")
        self.metrics = metrics
        self._rules: List[Tuple[int, ContextualRule]] = []
        self._sequence = itertools.count()
        self._lock = threading.RLock()

        for rule in rules or ():
            self.add(rule)

    def add(self, rule: ContextualRule) -> bool:
        """Insert a rule, replacing any rule with the same id. Returns True on replace."""
        with self._lock:
            replaced = self._discard(rule.id)
            self._rules.append((next(self._sequence), rule))
            self._rules.sort(key=lambda entry: (-entry[1].priority, entry[0]))

        self.logger.info(
            "Contextual rule added",
            rule_id=rule.id,
            name=rule.name,
            resource=rule.resource,
            action=rule.action,
            priority=rule.priority,
            replaced=replaced
        )
        return replaced

    def remove(self, rule_id: str) -> bool:
        """Delete a rule by id."""
        with self._lock:
            removed = self._discard(rule_id)

        if removed:
            self.logger.info("Contextual rule removed", rule_id=rule_id)
        return removed

    def get(self, rule_id: str) -> Optional[ContextualRule]:
        with self._lock:
            for _, rule in self._rules:
                if rule.id == rule_id:
                    return rule
        return None

    def list(self) -> List[ContextualRule]:
        """All rules in evaluation order."""
        with self._lock:
            return [rule for _, rule in self._rules]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def matching(self, resource_type: str, action: str) -> List[ContextualRule]:
        """Rules applicable to (resource_type, action), in evaluation order."""
        with self._lock:
            return [rule for _, rule in self._rules if rule.applies_to(resource_type, action)]

    def evaluate(self, request: AccessRequest) -> RuleSetOutcome:
        """Scan matching rules; the first predicate returning True decides."""
        outcome = RuleSetOutcome()

        for rule in self.matching(request.resource_type, request.action):
            outcome.consulted.append(rule.id)
            try:
                condition_met = bool(rule.condition(request.context))
            except Exception as e:
                self.logger.warning(
                    "Contextual rule raised, skipping",
                    rule_id=rule.id,
                    resource=request.resource_type,
                    action=request.action,
                    error=str(e)
                )
                if self.metrics:
                    self.metrics.record_rule_error(rule.id)
                continue

            if condition_met:
                outcome.rule = rule
                self.logger.debug(
                    "Contextual rule matched",
                    rule_id=rule.id,
                    effect=rule.effect.value
                )
                break

        return outcome

    def _discard(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [entry for entry in self._rules if entry[1].id != rule_id]
        return len(self._rules) != before


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Read an ISO-8601 string or datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _is_self_access(context: AccessContext) -> bool:
    requester = context.get("requesting_user_id")
    return requester is not None and context.owner_id == requester


def _tournament_visible(context: AccessContext) -> bool:
    return context.get("is_public") is True or bool(context.organization_id)


def _tournament_started(context: AccessContext) -> bool:
    start = _parse_datetime(context.get("start_date"))
    return start is not None and start <= datetime.now(timezone.utc)


def _registration_open(context: AccessContext) -> bool:
    deadline = _parse_datetime(context.get("registration_deadline"))
    return deadline is None or datetime.now(timezone.utc) <= deadline


def default_contextual_rules() -> List[ContextualRule]:
    """Business rules of the tournament platform."""
    return [
        ContextualRule(
            id="tournament_visibility",
            name="Tournament Visibility Check",
            resource="tournament",
            action="read",
            condition=_tournament_visible,
            effect=RuleEffect.ALLOW,
            priority=100,
            description="Public tournaments and organization members may read",
        ),
        ContextualRule(
            id="self_profile_access",
            name="Self Profile Access",
            resource="user_profile",
            action="*",
            condition=_is_self_access,
            effect=RuleEffect.ALLOW,
            priority=200,
            description="Users manage their own profile",
        ),
        ContextualRule(
            id="participant_own_data",
            name="Participant Own Data Access",
            resource="participant",
            action="read",
            condition=_is_self_access,
            effect=RuleEffect.ALLOW,
            priority=150,
            description="Participants read their own registration",
        ),
        ContextualRule(
            id="tournament_time_based",
            name="Tournament Time-based Access",
            resource="tournament",
            action="update",
            condition=_tournament_started,
            effect=RuleEffect.DENY,
            priority=50,
            description="Started tournaments are frozen",
        ),
        ContextualRule(
            id="payment_processing",
            name="Payment Processing Rule",
            resource="payment",
            action="process",
            condition=_registration_open,
            effect=RuleEffect.ALLOW,
            priority=75,
            description="Payments are processed only during registration",
        ),
    ]


def rules_summary(rules: List[ContextualRule]) -> Dict[str, int]:
    """Count rules per resource type."""
    summary: Dict[str, int] = {}
    for rule in rules:
        summary[rule.resource] = summary.get(rule.resource, 0) + 1
    return summary
