"""Rule interpreter reacting to ticket lifecycle triggers.

For one trigger firing the engine loads the active rules for that trigger, highest
priority first, and for each rule evaluates its conditions, runs its actions in order
and appends exactly one execution record. Every rule runs inside its own failure
boundary: an exception degrades that rule to a failed record and the next rule still
runs. Nothing raised while processing a trigger reaches the caller.

Rules for one ticket run strictly in sequence against the ticket as mutated by the
previous rules, and the whole pipeline holds the ticket's lock from
:class:`TicketLockRegistry`. Triggers for different tickets may run concurrently.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence

from opentelemetry import trace

from ticketflow.metrics import MetricsRegistry, metrics_registry as default_metrics_registry, track_duration
from ticketflow.tickets.models import Ticket

from .actions import ActionExecutor
from .conditions import ConditionEvaluator
from .locks import TicketLockRegistry
from .models import AutomationExecution, AutomationRule, AutomationTrigger, RuleValidationError
from .triggers import trigger_from_event

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RuleStore(Protocol):
    async def get_active_rules(self, trigger: AutomationTrigger) -> Sequence[AutomationRule]:
        ...

    async def append_execution(self, execution: AutomationExecution) -> None:
        ...


class AutomationEngine:
    def __init__(
        self,
        rules: RuleStore,
        executor: ActionExecutor,
        *,
        evaluator: ConditionEvaluator | None = None,
        locks: TicketLockRegistry | None = None,
        metrics: MetricsRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._rules = rules
        self._executor = executor
        self._evaluator = evaluator or ConditionEvaluator()
        self._locks = locks or TicketLockRegistry()
        self._metrics = metrics or default_metrics_registry
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def locks(self) -> TicketLockRegistry:
        return self._locks

    async def process_event(self, event: str, ticket: Ticket) -> list[AutomationExecution]:
        """Process a lifecycle event name; events without a trigger are ignored."""

        trigger = trigger_from_event(event)
        if trigger is None:
            logger.debug("Event '%s' has no automation trigger", event)
            return []
        return await self.process_trigger(trigger, ticket)

    async def process_trigger(self, trigger: AutomationTrigger, ticket: Ticket) -> list[AutomationExecution]:
        """Run every active rule for ``trigger`` against ``ticket``.

        Returns the execution records that were produced, in evaluation order.
        """

        labels = {"trigger": trigger.value}
        try:
            self._metrics.counter("automation_triggers_total", label_names=("trigger",)).inc(labels=labels)
            duration = self._metrics.distribution("automation_trigger_duration_seconds", label_names=("trigger",))

            with tracer.start_as_current_span("automation.process_trigger") as span:
                span.set_attribute("automation.trigger", trigger.value)
                span.set_attribute("ticket.id", ticket.id)
                with track_duration(duration, labels=labels):
                    async with self._locks.hold(ticket.id):
                        return await self._run_rules(trigger, ticket)
        except Exception:
            logger.exception(
                "Automation processing failed for trigger %s on ticket %s", trigger.value, ticket.ticket_number
            )
            return []

    async def _run_rules(self, trigger: AutomationTrigger, ticket: Ticket) -> list[AutomationExecution]:
        try:
            rules = list(await self._rules.get_active_rules(trigger))
        except Exception:
            logger.exception("Failed to load automation rules for trigger %s", trigger.value)
            return []

        # Stable order: priority descending, then creation order.
        rules.sort(key=lambda rule: (-rule.priority, rule.created_at))
        logger.info(
            "Processing %d rules for trigger %s on ticket %s",
            len(rules),
            trigger.value,
            ticket.ticket_number,
        )

        executions: list[AutomationExecution] = []
        current = ticket
        for rule in rules:
            if not rule.is_active or rule.trigger != trigger:
                continue
            execution, current = await self._run_rule(trigger, rule, current)
            executions.append(execution)
        return executions

    async def _run_rule(
        self, trigger: AutomationTrigger, rule: AutomationRule, ticket: Ticket
    ) -> tuple[AutomationExecution, Ticket]:
        labels = {"trigger": trigger.value}
        self._metrics.counter("automation_rules_evaluated_total", label_names=("trigger",)).inc(labels=labels)

        current = ticket
        matched = False
        actions_executed = 0

        with tracer.start_as_current_span("automation.rule") as span:
            span.set_attribute("automation.rule_id", rule.id)
            try:
                if rule.load_error is not None:
                    raise RuleValidationError(rule.load_error)
                matched = self._evaluator.evaluate(rule.conditions, current)
                if matched:
                    logger.info(
                        'Rule "%s" matched ticket %s, executing %d actions',
                        rule.name,
                        current.ticket_number,
                        len(rule.actions),
                    )
                    for action in rule.actions:
                        current = await self._executor.execute(action, current)
                        actions_executed += 1
            except Exception as exc:
                logger.exception('Automation rule "%s" failed on ticket %s', rule.name, ticket.ticket_number)
                span.record_exception(exc)
                self._metrics.counter("automation_rule_failures_total", label_names=("trigger",)).inc(labels=labels)
                execution = self._execution(
                    rule,
                    ticket,
                    success=False,
                    error=str(exc) or exc.__class__.__name__,
                    details=self._details(trigger, rule, matched, actions_executed),
                )
            else:
                if matched:
                    self._metrics.counter("automation_rule_matches_total", label_names=("trigger",)).inc(
                        labels=labels
                    )
                execution = self._execution(
                    rule,
                    ticket,
                    success=True,
                    details=self._details(trigger, rule, matched, actions_executed),
                )

        await self._append(execution)
        return execution, current

    async def _append(self, execution: AutomationExecution) -> None:
        try:
            await self._rules.append_execution(execution)
        except Exception:
            logger.exception(
                "Failed to record execution of rule %s on ticket %s", execution.rule_id, execution.ticket_id
            )

    def _execution(
        self,
        rule: AutomationRule,
        ticket: Ticket,
        *,
        success: bool,
        details: dict[str, Any],
        error: str | None = None,
    ) -> AutomationExecution:
        return AutomationExecution(
            id=str(uuid.uuid4()),
            rule_id=rule.id,
            ticket_id=ticket.id,
            success=success,
            error=error,
            details=details,
            executed_at=self._clock(),
        )

    @staticmethod
    def _details(
        trigger: AutomationTrigger, rule: AutomationRule, matched: bool, actions_executed: int
    ) -> dict[str, Any]:
        return {
            "trigger": trigger.value,
            "matched": matched,
            "conditionsChecked": len(rule.conditions),
            "actionsExecuted": actions_executed,
        }
