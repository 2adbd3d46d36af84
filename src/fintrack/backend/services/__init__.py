"""Service-layer helpers shared by the HTTP blueprints."""

from .request_parser import parse_json_payload
from .response_builder import build_json_response

__all__ = [
    "build_json_response",
    "parse_json_payload",
]
