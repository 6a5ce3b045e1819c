"""
Check metrics.

Checks report counters, gauges and duration observations to a sink handed to
them at construction. Nothing in a check reads metrics back.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Tuple
import logging
import math

logger = logging.getLogger(__name__)

LabelKey = Tuple[Tuple[str, str], ...]

DEFAULT_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


def _label_key(labels: Optional[Dict[str, str]]) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


class MetricsSink:
    """Interface every metrics sink provides."""

    def inc(self, name: str, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        raise NotImplementedError

    def set(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        raise NotImplementedError

    def observe(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        raise NotImplementedError


class NullMetrics(MetricsSink):
    """Discards everything."""

    def inc(self, name, value=1, labels=None):
        pass

    def set(self, name, value, labels=None):
        pass

    def observe(self, name, value, labels=None):
        pass


class InMemoryMetrics(MetricsSink):
    """
    Collects metrics in process.

    Names are prefixed (e.g. check_roundtrip_upload_attempts); values are keyed
    by their sorted label pairs.
    """

    def __init__(self, prefix: str = "", buckets: Tuple[float, ...] = DEFAULT_BUCKETS):
        self.prefix = prefix
        self.buckets = tuple(sorted(buckets))
        self._counters: Dict[str, Dict[LabelKey, float]] = defaultdict(dict)
        self._gauges: Dict[str, Dict[LabelKey, float]] = defaultdict(dict)
        self._histograms: Dict[str, Dict[LabelKey, List[float]]] = defaultdict(dict)

    def _full_name(self, name: str) -> str:
        return f"{self.prefix}_{name}" if self.prefix else name

    def inc(self, name, value=1, labels=None):
        series = self._counters[self._full_name(name)]
        key = _label_key(labels)
        series[key] = series.get(key, 0) + value

    def set(self, name, value, labels=None):
        self._gauges[self._full_name(name)][_label_key(labels)] = value

    def observe(self, name, value, labels=None):
        series = self._histograms[self._full_name(name)]
        series.setdefault(_label_key(labels), []).append(value)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self._counters.get(self._full_name(name), {}).get(_label_key(labels), 0)

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        return self._gauges.get(self._full_name(name), {}).get(_label_key(labels))

    def get_observations(self, name: str, labels: Optional[Dict[str, str]] = None) -> List[float]:
        return list(self._histograms.get(self._full_name(name), {}).get(_label_key(labels), []))

    @staticmethod
    def _format_labels(key: LabelKey, extra: Optional[Tuple[str, str]] = None) -> str:
        pairs = list(key) + ([extra] if extra else [])
        if not pairs:
            return ""
        body = ",".join(f'{k}="{v}"' for k, v in pairs)
        return "{" + body + "}"

    def export_prometheus(self) -> str:
        """Export in Prometheus text format."""
        lines = []

        for name in sorted(self._counters):
            lines.append(f"# TYPE {name} counter")
            for key, value in sorted(self._counters[name].items()):
                lines.append(f"{name}{self._format_labels(key)} {value}")

        for name in sorted(self._gauges):
            lines.append(f"# TYPE {name} gauge")
            for key, value in sorted(self._gauges[name].items()):
                lines.append(f"{name}{self._format_labels(key)} {value}")

        for name in sorted(self._histograms):
            lines.append(f"# TYPE {name} histogram")
            for key, values in sorted(self._histograms[name].items()):
                for bound in self.buckets + (math.inf,):
                    le = "+Inf" if bound == math.inf else str(bound)
                    count = sum(1 for v in values if v <= bound)
                    lines.append(f"{name}_bucket{self._format_labels(key, ('le', le))} {count}")
                lines.append(f"{name}_sum{self._format_labels(key)} {sum(values)}")
                lines.append(f"{name}_count{self._format_labels(key)} {len(values)}")

        return "\n".join(lines) + ("\n" if lines else "")
