"""Stage timing for learning runs and training rounds.

    tel = Telemetry()
    with tel.span("extract"):
        with tel.span("page-1"):
            ...
    logger.debug(tel.summary())
"""
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional


@dataclass
class Span:
    name: str
    parent: Optional[str]
    started: float
    duration: Optional[float] = None

    @property
    def path(self) -> str:
        return f"{self.parent}/{self.name}" if self.parent else self.name

    @property
    def finished(self) -> bool:
        return self.duration is not None


class Telemetry:
    """Named, nestable timing spans for one pipeline run."""

    def __init__(self):
        self.spans: List[Span] = []
        self._open: List[Span] = []
        self._created = time.monotonic()

    @contextmanager
    def span(self, name: str) -> Iterator[Span]:
        current = Span(
            name=name,
            parent=self._open[-1].path if self._open else None,
            started=time.monotonic(),
        )
        self.spans.append(current)
        self._open.append(current)
        try:
            yield current
        finally:
            current.duration = time.monotonic() - current.started
            self._open.pop()

    def elapsed_ms(self) -> int:
        """Milliseconds since this telemetry was created."""
        return int((time.monotonic() - self._created) * 1000)

    def stage_seconds(self, name: str) -> float:
        """Seconds spent in top-level spans called `name`."""
        return sum(s.duration for s in self.spans if s.finished and s.parent is None and s.name == name)

    def summary(self) -> str:
        if not self.spans:
            return "No stages timed."
        elapsed = self.elapsed_ms() / 1000
        rows = [f"{'Stage':<30} {'Seconds':>9} {'Share':>8}"]
        for s in self.spans:
            if not s.finished:
                continue
            share = s.duration / elapsed * 100 if elapsed > 0 else 0.0
            label = ("  " * s.path.count("/")) + s.name
            rows.append(f"{label:<30} {s.duration:>9.2f} {share:>7.1f}%")
        rows.append(f"{'elapsed':<30} {elapsed:>9.2f}")
        return "\n".join(rows)

    def _children(self, parent: Optional[str]) -> List[Dict]:
        nodes = []
        for s in self.spans:
            if s.parent != parent:
                continue
            node: Dict = {
                "name": s.name,
                "duration_seconds": round(s.duration, 3) if s.finished else None,
            }
            children = self._children(s.path)
            if children:
                node["children"] = children
            nodes.append(node)
        return nodes

    def to_dict(self) -> Dict:
        """Span tree, JSON-serializable."""
        return {
            "total_seconds": round(self.elapsed_ms() / 1000, 3),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "spans": self._children(None),
        }
