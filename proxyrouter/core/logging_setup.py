import logging
from proxyrouter.core.trace import trace_id_var


class TraceLogFilter(logging.Filter):
    def filter(self, record):
        record.trace_id = trace_id_var.get() or "-"
        return True


def configure_logging(level: str = "INFO", proxy_level: str = "INFO"):
    """Root logging with trace ids; per-request proxy lines show at ``proxy_level=DEBUG``."""
    handler = logging.StreamHandler()
    handler.addFilter(TraceLogFilter())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] [trace_id=%(trace_id)s] %(name)s: %(message)s"
    ))
    logging.basicConfig(level=level.upper(), handlers=[handler])
    logging.getLogger("proxyrouter.proxy").setLevel(proxy_level.upper())
