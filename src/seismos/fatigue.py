"""Long-horizon structural fatigue tracking.

Stiffness loss (fatigued concrete, corroded steel, settling foundations)
lowers a building's natural frequency slowly. Each building keeps a rolling
window of dominant-frequency samples; the median of the first samples fixes
a baseline once, and a least-squares trend over the window flags sustained
downward drift. A warning needs both a steep enough slope and a good fit, so
noisy but flat histories stay quiet.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional, Sequence, Tuple

import numpy as np

from .config import FatigueConfig
from .types import FatigueIndicator


def linear_regression(values: Sequence[float]) -> Tuple[float, float]:
    """OLS of value against sample index; returns (slope, r_squared) with r_squared >= 0."""
    n = len(values)
    if n < 2:
        return 0.0, 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(n, dtype=float)
    dx = x - x.mean()
    denominator = float(np.dot(dx, dx))
    if denominator == 0:
        return 0.0, 0.0
    slope = float(np.dot(dx, y - y.mean())) / denominator
    intercept = float(y.mean()) - slope * float(x.mean())
    residuals = y - (slope * x + intercept)
    ss_res = float(np.dot(residuals, residuals))
    ss_tot = float(np.dot(y - y.mean(), y - y.mean()))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0
    return slope, max(0.0, r_squared)


@dataclass
class _History:
    samples: Deque[float]
    baseline: Optional[float] = None
    last_warning: bool = field(default=False)


class BaselineTracker:
    def __init__(self, cfg: Optional[FatigueConfig] = None):
        self.cfg = cfg or FatigueConfig()
        self._histories: Dict[str, _History] = {}
        self._lock = threading.Lock()

    def update(self, building_id: str, frequency: float) -> FatigueIndicator:
        cfg = self.cfg
        with self._lock:
            history = self._histories.get(building_id)
            if history is None:
                history = _History(samples=deque(maxlen=cfg.history_window))
                self._histories[building_id] = history
            history.samples.append(float(frequency))
            if history.baseline is None and len(history.samples) >= cfg.baseline_window:
                first = list(history.samples)[: cfg.baseline_window]
                history.baseline = float(np.median(first))
            indicator = self._indicator(history, float(frequency))
            history.last_warning = indicator.has_warning
            return indicator

    def _indicator(self, history: _History, current: float) -> FatigueIndicator:
        cfg = self.cfg
        count = len(history.samples)
        baseline = history.baseline if history.baseline is not None else current
        deviation = (baseline - current) / baseline * 100.0 if baseline > 0 else 0.0
        if count < cfg.min_samples:
            return FatigueIndicator(
                has_warning=False,
                trend_slope=0.0,
                baseline_frequency=baseline,
                current_frequency=current,
                deviation_percent=deviation,
                sample_count=count,
                trend_confidence=0.0,
            )
        slope, r_squared = linear_regression(list(history.samples))
        return FatigueIndicator(
            has_warning=slope < cfg.slope_threshold and r_squared > cfg.min_confidence,
            trend_slope=slope,
            baseline_frequency=baseline,
            current_frequency=current,
            deviation_percent=deviation,
            sample_count=count,
            trend_confidence=r_squared,
        )

    def indicator(self, building_id: str) -> Optional[FatigueIndicator]:
        """Indicator for the latest sample without adding one; None if never sampled."""
        with self._lock:
            history = self._histories.get(building_id)
            if history is None or not history.samples:
                return None
            return self._indicator(history, history.samples[-1])

    def was_warning(self, building_id: str) -> bool:
        with self._lock:
            history = self._histories.get(building_id)
            return bool(history and history.last_warning)

    def get_baseline(self, building_id: str) -> float:
        with self._lock:
            history = self._histories.get(building_id)
            if history is None or history.baseline is None:
                return self.cfg.default_baseline_hz
            return history.baseline

    def reset(self, building_id: Optional[str] = None) -> None:
        with self._lock:
            if building_id is None:
                self._histories.clear()
            else:
                self._histories.pop(building_id, None)
