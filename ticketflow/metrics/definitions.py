"""Metrics emitted by the automation engine and the SLA monitor."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    metric_type: str
    description: str
    label_names: Tuple[str, ...] = ()


DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name="automation_triggers_total",
        metric_type="counter",
        description="Trigger firings processed by the automation engine.",
        label_names=("trigger",),
    ),
    MetricDefinition(
        name="automation_rules_evaluated_total",
        metric_type="counter",
        description="Rules evaluated against a ticket.",
        label_names=("trigger",),
    ),
    MetricDefinition(
        name="automation_rule_matches_total",
        metric_type="counter",
        description="Rules whose conditions matched.",
        label_names=("trigger",),
    ),
    MetricDefinition(
        name="automation_rule_failures_total",
        metric_type="counter",
        description="Rules that raised while evaluating conditions or running actions.",
        label_names=("trigger",),
    ),
    MetricDefinition(
        name="automation_actions_executed_total",
        metric_type="counter",
        description="Automation actions executed.",
        label_names=("action",),
    ),
    MetricDefinition(
        name="automation_actions_skipped_total",
        metric_type="counter",
        description="Automation actions skipped because their type is unknown.",
        label_names=("action",),
    ),
    MetricDefinition(
        name="automation_trigger_duration_seconds",
        metric_type="distribution",
        description="Time spent processing one trigger firing.",
        label_names=("trigger",),
    ),
    MetricDefinition(
        name="sla_warnings_total",
        metric_type="counter",
        description="SLA warnings raised for tickets close to their deadline.",
    ),
    MetricDefinition(
        name="sla_breaches_total",
        metric_type="counter",
        description="Tickets flagged as having breached their SLA.",
    ),
)
