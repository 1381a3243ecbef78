from __future__ import annotations


class Timer:
    """
    A clock advanced by every simulation tick.

    Duration timers are created with a negative value and count as expired once
    they reach zero, so the code that checks expiry never needs to know the
    duration that was used to start them.
    """

    __slots__ = ("t",)

    def __init__(self, t: float = 0.0) -> None:
        self.t = t

    @property
    def expired(self) -> bool:
        return self.t >= 0.0

    def __repr__(self) -> str:
        return f"Timer(t={self.t!r})"


class CompensatedAccumulator:
    """Running sum with a Neumaier compensation term."""

    __slots__ = ("acc", "err")

    def __init__(self, acc: float = 0.0, err: float = 0.0) -> None:
        self.acc = acc
        self.err = err

    def add(self, n: float) -> None:
        t = self.acc + n
        if abs(self.acc) >= abs(n):
            self.err += (self.acc - t) + n
        else:
            self.err += (n - t) + self.acc
        self.acc = t

    @property
    def value(self) -> float:
        return self.acc + self.err

    def __repr__(self) -> str:
        return f"CompensatedAccumulator(acc={self.acc!r}, err={self.err!r})"
