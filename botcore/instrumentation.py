"""
Outcome and latency instrumentation for dispatched handlers.

Every handler the Dispatcher runs goes through `instrumented()`: it times
the call, counts it in Prometheus, writes one structured log line and
swallows the handler's exception so one feature cannot take down another.
"""

import time
import logging
import traceback
from typing import Any, Awaitable, Callable, Optional

from prometheus_client import CollectorRegistry, Counter

from .models import DispatchType
from .registry import Blocked

logger = logging.getLogger(__name__)

LATENCY_BUCKETS = (
    (0.1, "lt_100ms"),
    (0.25, "lt_250ms"),
    (0.5, "lt_500ms"),
    (1.0, "lt_1s"),
    (2.0, "lt_2s"),
    (5.0, "lt_5s"),
)
SLOWEST_BUCKET = "gte_5s"


def latency_bucket(seconds: float) -> str:
    """Label of the latency bucket a duration falls into."""
    for limit, label in LATENCY_BUCKETS:
        if seconds < limit:
            return label
    return SLOWEST_BUCKET


def serialize_error(error: BaseException) -> dict:
    return {
        "type": type(error).__name__,
        "message": str(error),
        "traceback": "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ),
    }


class CommandMetrics:
    """
    Invocation and latency counters.

    Each instance owns its CollectorRegistry so several dispatchers (for
    example in tests) never collide on metric names.
    """

    def __init__(self, enabled: bool = True, registry: Optional[CollectorRegistry] = None):
        self.enabled = enabled
        self.registry = registry if registry is not None else CollectorRegistry()
        self.invocations = Counter(
            "bot_command_invocations",
            "Handler invocations by dispatch type, command and outcome",
            ["type", "cmd", "status"],
            registry=self.registry,
        )
        self.latency = Counter(
            "bot_command_latency",
            "Handler invocations by dispatch type, command and latency bucket",
            ["type", "cmd", "bucket"],
            registry=self.registry,
        )

    def record(self, dispatch_type: DispatchType, cmd: str, status: str, seconds: float) -> None:
        if not self.enabled:
            return
        try:
            self.invocations.labels(type=dispatch_type.value, cmd=cmd, status=status).inc()
            self.latency.labels(
                type=dispatch_type.value, cmd=cmd, bucket=latency_bucket(seconds)
            ).inc()
        except Exception as e:
            logger.warning(f"metrics.increment.failed {cmd}: {e}")

    def invocation_count(self, dispatch_type: DispatchType, cmd: str, status: str) -> float:
        """Current invocation count (0 if never recorded)."""
        value = self.registry.get_sample_value(
            "bot_command_invocations_total",
            {"type": dispatch_type.value, "cmd": cmd, "status": status},
        )
        return value or 0.0


async def instrumented(
    metrics: CommandMetrics,
    dispatch_type: DispatchType,
    cmd: str,
    invoke: Callable[[], Awaitable[Any]],
    **fields
) -> Any:
    """
    Run one handler call with timing, counting and logging.

    Args:
        metrics: Counters to update
        dispatch_type: Invocation kind (metric/log `type` label)
        cmd: Command key, structured name or component prefix
        invoke: Zero-argument coroutine factory calling the handler
        **fields: Identifiers added to the log line (community_id, ...)

    Returns:
        The handler's result, or None if it raised
    """
    start = time.perf_counter()
    try:
        result = await invoke()
    except Exception as e:
        elapsed = time.perf_counter() - start
        metrics.record(dispatch_type, cmd, "error", elapsed)
        logger.error(
            f"command.error {dispatch_type.value} {cmd}: {e}",
            extra={
                "type": dispatch_type.value,
                "cmd": cmd,
                "status": "error",
                "duration_ms": round(elapsed * 1000, 1),
                "error": serialize_error(e),
                **fields,
            },
        )
        return None

    elapsed = time.perf_counter() - start
    if isinstance(result, Blocked):
        logger.debug(
            f"command.blocked {dispatch_type.value} {cmd} ({result.reason})",
            extra={"type": dispatch_type.value, "cmd": cmd, "reason": result.reason, **fields},
        )
        return result

    metrics.record(dispatch_type, cmd, "ok", elapsed)
    logger.info(
        f"command.ok {dispatch_type.value} {cmd}",
        extra={
            "type": dispatch_type.value,
            "cmd": cmd,
            "status": "ok",
            "duration_ms": round(elapsed * 1000, 1),
            **fields,
        },
    )
    return result
