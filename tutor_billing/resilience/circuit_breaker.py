"""
Circuit Breaker pattern implementation.

Guards the record store client: after a run of consecutive store failures
further requests fail fast instead of hammering an unavailable API.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Too many failures, calls are blocked
- HALF_OPEN: Testing if the store recovered
"""

import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Any, Optional, Type


logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"          # Normal operation
    OPEN = "open"              # Blocking calls due to failures
    HALF_OPEN = "half_open"    # Testing recovery


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is in OPEN state."""
    pass


class CircuitBreaker:
    """
    Circuit breaker for fault tolerance.

    Counts consecutive failures, opens after the threshold, blocks calls
    while open and lets one trial call through once the timeout passed.
    State changes are guarded by a lock because batch runs share one
    client across worker threads.

    Examples:
        >>> cb = CircuitBreaker(
        ...     failure_threshold=5,
        ...     timeout=timedelta(seconds=60),
        ...     expected_exception=StoreError,
        ...     is_failure=lambda e: e.is_retryable
        ... )
        >>> try:
        ...     rows = cb.call(client.list_records, "lessons")
        ... except CircuitBreakerOpenError:
        ...     logger.error("Store unavailable")
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: timedelta = timedelta(seconds=60),
        expected_exception: Type[Exception] = Exception,
        is_failure: Optional[Callable[[Exception], bool]] = None
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            timeout: Time to wait before trying again (HALF_OPEN)
            expected_exception: Exception type to count as failure
            is_failure: Optional predicate narrowing which expected
                exceptions count (e.g. a 404 is an answer, not an outage)
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.expected_exception = expected_exception
        self.is_failure = is_failure

        # State
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = CircuitState.CLOSED
        self._lock = threading.Lock()

        logger.debug(
            f"Circuit breaker initialized: "
            f"threshold={failure_threshold}, timeout={timeout}"
        )

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function with circuit breaker protection.

        Args:
            func: Function to execute
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Function result

        Raises:
            CircuitBreakerOpenError: If circuit is OPEN
            Exception: Any exception raised by func
        """
        with self._lock:
            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    logger.info("Circuit breaker: Entering HALF_OPEN state")
                    self.state = CircuitState.HALF_OPEN
                else:
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker is OPEN (failures: {self.failure_count})"
                    )

        try:
            result = func(*args, **kwargs)
        except self.expected_exception as e:
            if self.is_failure is None or self.is_failure(e):
                self._on_failure()
            else:
                self._on_success()
            raise

        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt reset."""
        if self.last_failure_time is None:
            return True

        time_since_failure = datetime.now() - self.last_failure_time
        return time_since_failure > self.timeout

    def _on_success(self):
        """Handle successful call."""
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info("Circuit breaker: Back to CLOSED state")
                self.state = CircuitState.CLOSED

            self.failure_count = 0

    def _on_failure(self):
        """Handle failed call."""
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = datetime.now()

            logger.warning(
                f"Circuit breaker: Failure #{self.failure_count} "
                f"(threshold={self.failure_threshold})"
            )

            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                if self.state != CircuitState.OPEN:
                    logger.error(
                        f"Circuit breaker: OPEN after {self.failure_count} failures"
                    )
                self.state = CircuitState.OPEN

    def reset(self):
        """Manually reset circuit breaker to CLOSED state."""
        logger.info("Circuit breaker: Manual reset to CLOSED")
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.last_failure_time = None

    @property
    def is_open(self) -> bool:
        """Check if circuit is OPEN."""
        return self.state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        """Check if circuit is CLOSED."""
        return self.state == CircuitState.CLOSED

    @property
    def is_half_open(self) -> bool:
        """Check if circuit is HALF_OPEN."""
        return self.state == CircuitState.HALF_OPEN

    def get_state_info(self) -> dict:
        """
        Get current circuit breaker state information.

        Returns:
            Dictionary with state, failure count, and last failure time
        """
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": (
                self.last_failure_time.isoformat()
                if self.last_failure_time
                else None
            ),
            "failure_threshold": self.failure_threshold,
        }
