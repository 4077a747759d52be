"""Value types exchanged inside the refresh pipeline."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from analyser.core.enums import FailureKind
from analyser.models.market import PricePoint


@dataclass(frozen=True)
class FetchSuccess:
    """A symbol's series was fetched and parsed."""
    symbol: str
    prices: List[PricePoint]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class FetchFailure:
    """A symbol could not be fetched this pass."""
    symbol: str
    kind: FailureKind
    error: str
    is_rate_limited: bool = False

    @property
    def ok(self) -> bool:
        return False


FetchOutcome = Union[FetchSuccess, FetchFailure]


@dataclass
class BatchReport:
    """Aggregate over one governor pass.

    Built only after every launched worker has finished. Rates are
    percentages of all outcomes and are 0.0 for an empty batch.
    """
    successful: List[FetchSuccess] = field(default_factory=list)
    failed: List[FetchFailure] = field(default_factory=list)
    total_time: float = 0.0
    rate_limit_errors: int = 0

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def avg_time_per_request(self) -> float:
        return self.total_time / self.total if self.total else 0.0

    def _pct(self, count: int) -> float:
        if self.total == 0:
            return 0.0
        return count / self.total * 100.0

    def success_rate(self) -> float:
        return self._pct(len(self.successful))

    def rate_limit_rate(self) -> float:
        return self._pct(self.rate_limit_errors)

    def failure_rate(self) -> float:
        """Failed outcomes that were not rate limited."""
        return self._pct(len(self.failed) - self.rate_limit_errors)

    def add(self, outcome: FetchOutcome) -> None:
        if isinstance(outcome, FetchSuccess):
            self.successful.append(outcome)
        else:
            self.failed.append(outcome)
            if outcome.is_rate_limited:
                self.rate_limit_errors += 1

    def summary(self) -> str:
        return (
            f"{len(self.successful)} ok, {len(self.failed)} failed "
            f"({self.rate_limit_errors} rate limited, {self.rate_limit_rate():.1f}%) "
            f"in {self.total_time:.1f}s"
        )


@dataclass(frozen=True)
class SessionCredential:
    """Upstream crumb plus the monotonic time it was acquired."""
    token: str
    acquired_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.acquired_at > ttl_seconds


@dataclass(frozen=True)
class RefreshDecision:
    """Whether a symbol needs fetching this pass."""
    should_proceed: bool
    reason: str = ""
    last_refreshed_at: Optional[datetime] = None

    @classmethod
    def proceed(cls, reason: str = "") -> "RefreshDecision":
        return cls(should_proceed=True, reason=reason)

    @classmethod
    def skip(cls, reason: str, last_refreshed_at: datetime) -> "RefreshDecision":
        return cls(should_proceed=False, reason=reason, last_refreshed_at=last_refreshed_at)
