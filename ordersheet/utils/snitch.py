import functools
import logging
import uuid
import contextvars

# Trace id shared by every operation in the current context
NO_TRACE = "NO-TRACE"
_trace_id_ctx = contextvars.ContextVar("trace_id", default=NO_TRACE)

logger = logging.getLogger("ORDERSHEET_WORKFLOW")


def start_trace(custom_id=None):
    """Call this ONCE at the top of a request / script run."""
    tid = custom_id or f"run-{str(uuid.uuid4())[:8]}"
    _trace_id_ctx.set(tid)
    logger.info(f"[{tid}] Trace started")
    return tid


def get_trace_id():
    """Retrieve the current ID anywhere in the code."""
    return _trace_id_ctx.get()


def snitch(func):
    """Decorator to log entry/exit with the trace ID."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        tid = get_trace_id()
        func_name = func.__qualname__
        try:
            logger.debug(f"[{tid}] >> ENTER: {func_name}")
            result = func(*args, **kwargs)
            logger.debug(f"[{tid}] OK EXIT:  {func_name}")
            return result
        except Exception as e:
            logger.error(f"[{tid}] !! CRASH: {func_name} | {e}")
            raise
    return wrapper
