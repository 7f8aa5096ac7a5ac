"""
Reliability utilities for collaborator calls.

Includes the Circuit Breaker pattern. Calls are never retried here; a failing
collaborator surfaces as DependencyFailureError and retry policy belongs to
the caller.
"""

import time
import logging
from typing import Callable, Any, Dict

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.exceptions import AppException, DependencyFailureError

logger = logging.getLogger("dispatch.reliability")


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur within 'reset_timeout',
    the circuit opens and rejects calls for 'reset_timeout' seconds.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED" # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
        except AppException:
            # The collaborator answered; a business error is not an outage
            raise
        except Exception:
            self.record_failure()
            raise
        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


# One breaker per collaborator name, shared across requests
_breakers: Dict[str, CircuitBreaker] = {}


def get_breaker(name: str) -> CircuitBreaker:
    breaker = _breakers.get(name)
    if breaker is None:
        breaker = CircuitBreaker(
            failure_threshold=settings.collaborator_failure_threshold,
            reset_timeout=settings.collaborator_reset_timeout,
        )
        _breakers[name] = breaker
    return breaker


def reset_breakers():
    _breakers.clear()


async def call_collaborator(name: str, func: Callable, *args, **kwargs) -> Any:
    """
    Call a collaborator through its circuit breaker.

    Business errors raised by the collaborator (AppException) pass through
    untouched; anything else becomes DependencyFailureError.
    """
    breaker = get_breaker(name)
    try:
        return await breaker.call(func, *args, **kwargs)
    except AppException:
        raise
    except CircuitOpenError:
        logger.warning("Circuit open for collaborator %s", name)
        raise DependencyFailureError(name, "circuit open")
    except Exception as exc:
        logger.warning("Collaborator %s failed: %s", name, exc)
        raise DependencyFailureError(name, str(exc)) from exc
