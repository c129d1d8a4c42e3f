"""Group translated samples by metric name and render Prometheus text format."""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional

from .models import METRIC_DEFINITIONS, Device, MetricDefinition, MetricSample, Number
from .traits import translate_traits


def format_value(v: Number) -> str:
    if isinstance(v, bool):
        return "1" if v else "0"
    if isinstance(v, int):
        return str(v)
    f = float(v)
    if math.isnan(f):
        return "NaN"
    if math.isinf(f):
        return "+Inf" if f > 0 else "-Inf"
    if f.is_integer():
        return str(int(f))
    return repr(f)


def escape_label_value(v: str) -> str:
    return v.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def format_sample(sample: MetricSample) -> str:
    if sample.labels:
        inner = ",".join(f'{k}="{escape_label_value(str(v))}"' for k, v in sample.labels.items())
        return f"{sample.name}{{{inner}}} {format_value(sample.value)}"
    return f"{sample.name} {format_value(sample.value)}"


def render_metric(
    name: str,
    samples: Iterable[MetricSample],
    definition: Optional[MetricDefinition] = None,
) -> str:
    lines: List[str] = []
    if definition is not None:
        if definition.help:
            lines.append(f"# HELP {name} {definition.help}")
        if definition.type:
            lines.append(f"# TYPE {name} {definition.type}")
    lines.extend(format_sample(s) for s in samples)
    return "\n".join(lines).strip()


def collect_samples(devices: Iterable[Device], structure_id: str) -> Dict[str, List[MetricSample]]:
    """Translate the devices of one structure, grouped by metric name.

    Groups keep the order in which each metric name was first seen, and
    samples keep device order within a group.
    """
    groups: Dict[str, List[MetricSample]] = {}
    for device in devices:
        if device.structure_id != structure_id:
            continue
        base = device.base_labels()
        for entry in translate_traits(device.traits):
            labels = {**base, **(entry.labels or {})}
            groups.setdefault(entry.name, []).append(MetricSample(entry.name, entry.value, labels))
    return groups


def render(
    devices: Iterable[Device],
    structure_id: str,
    definitions: Optional[Dict[str, MetricDefinition]] = None,
) -> str:
    if definitions is None:
        definitions = METRIC_DEFINITIONS
    groups = collect_samples(devices, structure_id)
    blocks = [render_metric(name, samples, definitions.get(name)) for name, samples in groups.items()]
    return "\n\n".join(blocks).strip()
