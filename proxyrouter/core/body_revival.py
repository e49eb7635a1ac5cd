import json
from typing import Any, Optional
from urllib.parse import urlencode

# Set by a body-parsing middleware that has drained the receive channel.
PARSED_BODY_SCOPE_KEY = "proxy.parsed_body"


def _content_type(headers: list[tuple[str, str]]) -> str:
    for name, value in headers:
        if name.lower() == "content-type":
            return value.split(";", 1)[0].strip().lower()
    return ""


def revive_body(scope: dict, headers: list[tuple[str, str]]) -> Optional[bytes]:
    """Re-serialize a request body that was already parsed upstream of the proxy.

    Returns None when nothing was parsed or the content type is not one we
    know how to write back, in which case the receive channel is used as-is.
    """
    if PARSED_BODY_SCOPE_KEY not in scope:
        return None
    parsed: Any = scope[PARSED_BODY_SCOPE_KEY]
    if not parsed:
        return None

    content_type = _content_type(headers)
    if content_type == "application/json" or content_type.endswith("+json"):
        return json.dumps(parsed).encode()
    if content_type == "application/x-www-form-urlencoded":
        return urlencode(parsed, doseq=True).encode()
    return None
