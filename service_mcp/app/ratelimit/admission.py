"""
Token-bucket admission control keyed by tenant.

Every tenant gets an independent ``AdmissionBudget`` that is created on the
first request seen for it and kept by an ``AdmissionRegistry`` owned by the
controller. Budgets refill continuously at ``requests_per_second`` up to a
capacity of ``burst`` tokens; an admitted request withdraws one token.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from shared.config import RateLimitSettings
from shared.logging import get_logger

DEFAULT_TENANT = "default"

Clock = Callable[[], float]


@dataclass(frozen=True)
class AdmissionPolicy:
    """Rate-limit policy applied identically to every tenant."""

    enabled: bool = True
    requests_per_second: float = 100.0
    burst: int = 200
    max_tenants: int = 0

    def __post_init__(self):
        if self.requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if self.burst < 1:
            raise ValueError("burst must be at least 1")
        if self.max_tenants < 0:
            raise ValueError("max_tenants cannot be negative")

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> "AdmissionPolicy":
        return cls(
            enabled=settings.enabled,
            requests_per_second=settings.rps,
            burst=settings.burst,
            max_tenants=settings.max_tenants,
        )

    @property
    def limit(self) -> int:
        """Advertised limit for the ``X-RateLimit-Limit`` header."""
        return int(self.requests_per_second)


class AdmissionBudget:
    """Mutable token bucket for a single tenant.

    All reads and writes of ``available_tokens``/``last_refill_time`` happen
    under the budget's own lock, so concurrent calls for the same tenant are
    serialized while other tenants proceed independently.
    """

    __slots__ = ("capacity", "refill_rate", "available_tokens", "last_refill_time", "_lock")

    def __init__(self, capacity: int, refill_rate: float, now: float):
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.available_tokens = float(capacity)
        self.last_refill_time = now
        self._lock = threading.Lock()

    def _tokens_at(self, now: float) -> float:
        # A clock that steps backwards must not drain the bucket
        elapsed = max(0.0, now - self.last_refill_time)
        return min(float(self.capacity), self.available_tokens + elapsed * self.refill_rate)

    def try_acquire(self, now: float) -> Tuple[bool, float]:
        """Refill, then withdraw one token if available.

        Returns whether the withdrawal happened and the token count left.
        """
        with self._lock:
            self.available_tokens = self._tokens_at(now)
            self.last_refill_time = max(self.last_refill_time, now)
            if self.available_tokens >= 1.0:
                self.available_tokens -= 1.0
                return True, self.available_tokens
            return False, self.available_tokens

    def peek(self, now: float) -> float:
        """Token count a call at ``now`` would see, without consuming."""
        with self._lock:
            return self._tokens_at(now)


class AdmissionRegistry:
    """Owns the tenant -> budget mapping for one controller.

    Creation is an atomic check-and-insert: concurrent first requests for an
    unseen tenant all receive the same budget. With ``max_tenants`` set, the
    least recently used budget is dropped once the limit is exceeded;
    otherwise entries live as long as the registry.
    """

    def __init__(self, max_tenants: int = 0):
        self.max_tenants = max_tenants
        self.creations = 0
        self.evictions = 0
        self._budgets: "OrderedDict[str, AdmissionBudget]" = OrderedDict()
        self._lock = threading.Lock()
        self.logger = get_logger("mcp.ratelimit.registry")

    def get_or_create(self, tenant_key: str, factory: Callable[[], AdmissionBudget]) -> AdmissionBudget:
        if not self.max_tenants:
            budget = self._budgets.get(tenant_key)
            if budget is not None:
                return budget

        with self._lock:
            budget = self._budgets.get(tenant_key)
            if budget is not None:
                if self.max_tenants:
                    self._budgets.move_to_end(tenant_key)
                return budget

            budget = factory()
            self._budgets[tenant_key] = budget
            self.creations += 1
            self.logger.debug("Admission budget created", tenant_id=tenant_key)

            if self.max_tenants and len(self._budgets) > self.max_tenants:
                evicted, _ = self._budgets.popitem(last=False)
                self.evictions += 1
                self.logger.info("Admission budget evicted", tenant_id=evicted,
                                 max_tenants=self.max_tenants)
            return budget

    def get(self, tenant_key: str) -> Optional[AdmissionBudget]:
        return self._budgets.get(tenant_key)

    def tenants(self) -> List[str]:
        with self._lock:
            return list(self._budgets)

    def __contains__(self, tenant_key: object) -> bool:
        return tenant_key in self._budgets

    def __len__(self) -> int:
        return len(self._budgets)


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check plus the data behind the rate-limit headers.

    ``remaining`` and ``reset_at`` are ``None`` when admission control is
    disabled; such decisions carry no headers.
    """

    admitted: bool
    tenant: str
    limit: int
    remaining: Optional[int] = None
    reset_at: Optional[int] = None

    @property
    def rejected(self) -> bool:
        return not self.admitted

    def headers(self) -> Dict[str, str]:
        if self.remaining is None or self.reset_at is None:
            return {}
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class TenantAdmissionController:
    """Decides admit/reject for a tenant using its own token budget.

    ``admit`` never raises: rejection is an ordinary result. The caller is
    responsible for normalizing the tenant key (``DEFAULT_TENANT`` when the
    request carries no identity).
    """

    def __init__(
        self,
        policy: AdmissionPolicy,
        registry: Optional[AdmissionRegistry] = None,
        *,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
    ):
        self.policy = policy
        self.registry = registry if registry is not None else AdmissionRegistry(policy.max_tenants)
        self._clock = clock
        self._wall_clock = wall_clock

    @property
    def enabled(self) -> bool:
        return self.policy.enabled

    def admit(self, tenant_key: str) -> AdmissionDecision:
        if not self.policy.enabled:
            return AdmissionDecision(admitted=True, tenant=tenant_key, limit=self.policy.limit)

        budget = self.registry.get_or_create(tenant_key, self._new_budget)
        admitted, tokens = budget.try_acquire(self._clock())
        return AdmissionDecision(
            admitted=admitted,
            tenant=tenant_key,
            limit=self.policy.limit,
            remaining=int(tokens) if admitted else 0,
            # Advisory: next one-second boundary, not the exact refill time
            reset_at=int(self._wall_clock() + 1),
        )

    def inspect(self, tenant_key: str) -> Optional[Dict[str, float]]:
        """Report a tenant's budget without consuming a token or creating one."""
        budget = self.registry.get(tenant_key)
        if budget is None:
            return None
        return {
            "capacity": budget.capacity,
            "refill_rate": budget.refill_rate,
            "available_tokens": budget.peek(self._clock()),
        }

    def _new_budget(self) -> AdmissionBudget:
        return AdmissionBudget(self.policy.burst, self.policy.requests_per_second, self._clock())
