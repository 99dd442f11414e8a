"""Drawdown tracking and circuit breaker — pure math, no I/O.

Tracks the equity high-water mark and the current drawdown as a fraction
of it.  The breaker trips once drawdown exceeds the configured limit.
"""


class DrawdownTracker:
    """Tracks equity peaks and computes drawdown metrics.

    Args:
        initial_equity: Starting equity (also the first peak).
        max_drawdown: Fractional drawdown that trips the breaker
                      (e.g. 0.2 for 20 %).
    """

    def __init__(self, initial_equity: float, max_drawdown: float = 0.2) -> None:
        if initial_equity <= 0:
            raise ValueError(
                f"initial_equity must be positive, got {initial_equity}"
            )
        self._peak_equity: float = initial_equity
        self._current_equity: float = initial_equity
        self._max_drawdown: float = max_drawdown

    # ── Mutation ─────────────────────────────────────────────────────────

    def update(self, equity: float) -> float:
        """Record the latest equity and return the resulting drawdown.

        If *equity* exceeds the current peak, the peak is raised.
        """
        self._current_equity = equity
        if equity > self._peak_equity:
            self._peak_equity = equity
        return self.drawdown

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def peak_equity(self) -> float:
        """Highest equity recorded."""
        return self._peak_equity

    @property
    def current_equity(self) -> float:
        """Most recently recorded equity."""
        return self._current_equity

    @property
    def drawdown(self) -> float:
        """Current drawdown as a fraction of peak equity, in [0, 1]."""
        if self._peak_equity <= 0:
            return 0.0
        dd = (self._peak_equity - self._current_equity) / self._peak_equity
        return min(1.0, max(0.0, dd))

    def drawdown_for(self, equity: float) -> float:
        """Drawdown *equity* would produce, without recording it."""
        peak = max(self._peak_equity, equity)
        if peak <= 0:
            return 0.0
        return min(1.0, max(0.0, (peak - equity) / peak))

    @property
    def limit_breached(self) -> bool:
        """``True`` once drawdown is strictly beyond the limit."""
        return self.drawdown > self._max_drawdown

    def near_limit(self, fraction: float = 0.8) -> bool:
        """``True`` when drawdown has reached *fraction* of the limit."""
        return self.drawdown >= self._max_drawdown * fraction
