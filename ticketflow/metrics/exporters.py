"""Render the metrics registry for external scrapers."""
from __future__ import annotations

from .registry import MetricsRegistry


def _label_text(label_names: tuple[str, ...], values: tuple[str, ...]) -> str:
    if not values:
        return ""
    pairs = [f'{name}="{value}"' for name, value in zip(label_names, values)]
    return "{" + ",".join(pairs) + "}"


class PrometheusExporter:
    """Prometheus text exposition format (version 0.0.4)."""

    content_type = "text/plain; version=0.0.4; charset=utf-8"

    def __init__(self, registry: MetricsRegistry) -> None:
        self.registry = registry

    def build_payload(self) -> str:
        lines: list[str] = []
        for metric in sorted(self.registry.metrics(), key=lambda item: item.name):
            lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for label_values, values in sorted(metric.snapshot().items()):
                labels = _label_text(metric.label_names, label_values)
                if "value" in values:
                    lines.append(f"{metric.name}{labels} {values['value']}")
                else:
                    lines.append(f"{metric.name}_count{labels} {values['count']}")
                    lines.append(f"{metric.name}_sum{labels} {values['sum']}")
        return "\n".join(lines) + "\n"
