"""
New Relic instrumentation helpers.

Everything here is a no-op unless the ``newrelic`` package is installed and a
license key is configured.
"""
import functools
import inspect
import logging
from typing import Callable, Optional
from pixelcanvas.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Try to import New Relic, but don't fail if not available
try:
    import newrelic.agent
    NEW_RELIC_AVAILABLE = True
except ImportError:
    NEW_RELIC_AVAILABLE = False
    logger.info("New Relic not available - monitoring disabled")


def monitoring_enabled() -> bool:
    return NEW_RELIC_AVAILABLE and bool(settings.new_relic_license_key)


def monitor_transaction(name: Optional[str] = None):
    """
    Decorator tracing a sync or async function as a New Relic function trace.

    Usage:
        @monitor_transaction("pixels/place")
        async def place(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        trace_name = name or f"{func.__module__}.{func.__name__}"

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                if not monitoring_enabled():
                    return await func(*args, **kwargs)
                with newrelic.agent.FunctionTrace(trace_name):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            if not monitoring_enabled():
                return func(*args, **kwargs)
            with newrelic.agent.FunctionTrace(trace_name):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator


def record_custom_event(event_type: str, attributes: dict):
    """
    Record a custom event such as "PixelPlacement" or "EntitlementGrant".
    """
    if monitoring_enabled():
        try:
            newrelic.agent.record_custom_event(event_type, attributes)
        except Exception as e:
            logger.debug(f"Failed to record custom event: {e}")


def record_custom_metric(metric_name: str, value: float):
    if monitoring_enabled():
        try:
            newrelic.agent.record_custom_metric(metric_name, value)
        except Exception as e:
            logger.debug(f"Failed to record custom metric: {e}")


class DatabaseTrace:
    """
    Context manager reporting a block as a datastore operation.

    Usage:
        with DatabaseTrace("place_pixel"):
            ...
    """

    def __init__(self, operation_name: str, target: str = "pixelcanvas"):
        self.operation_name = operation_name
        self.target = target
        self.trace = None

    def __enter__(self):
        if monitoring_enabled():
            try:
                product = settings.database_url.split(":", 1)[0].split("+", 1)[0]
                self.trace = newrelic.agent.DatastoreTrace(
                    product=product,
                    target=self.target,
                    operation=self.operation_name,
                )
                self.trace.__enter__()
            except Exception as e:
                logger.debug(f"Failed to start database trace: {e}")
                self.trace = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.trace:
            try:
                self.trace.__exit__(exc_type, exc_val, exc_tb)
            except Exception as e:
                logger.debug(f"Failed to end database trace: {e}")
        return False
