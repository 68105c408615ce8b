"""Building and checking master-API style XML-RPC responses.

A response is a ``[status_code, status_message, payload]`` triple; a status
code of 1 means success.
"""

from __future__ import annotations

import os
from typing import Any, List, Sequence


class XmlRpcResponseError(ValueError):
    """Raised when an XML-RPC response is malformed or reports failure."""


def response_str(code: int, msg: str, response: str) -> List[Any]:
    """A response carrying a string payload."""
    return [code, msg, str(response)]


def response_int(code: int, msg: str, response: int) -> List[Any]:
    """A response carrying an integer payload."""
    return [code, msg, int(response)]


def response_bool(code: int, msg: str, response: bool) -> List[Any]:
    """A response carrying a boolean payload."""
    return [code, msg, bool(response)]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_xmlrpc_response(response: Sequence[Any]) -> Any:
    """Check a response and return its payload.

    The response must be a two- or three-element array whose first element is
    an integer status code equal to 1 and whose second is a string. A missing
    payload is returned as an empty list.
    """
    if not isinstance(response, (list, tuple)):
        raise XmlRpcResponseError("response is not an array")
    if len(response) not in (2, 3):
        raise XmlRpcResponseError(f"response has {len(response)} elements, expected 2 or 3")
    status_code, status_string = response[0], response[1]
    if not _is_int(status_code):
        raise XmlRpcResponseError("response status code is not an integer")
    if not isinstance(status_string, str):
        raise XmlRpcResponseError("response status message is not a string")
    if status_code != 1:
        raise XmlRpcResponseError(f"call failed with status {status_code}: {status_string}")
    if len(response) > 2:
        return response[2]
    return []


def get_pid(params: Any) -> List[Any]:
    """Handler for the ``getPid`` call: report this process id."""
    del params
    return response_int(1, "", os.getpid())