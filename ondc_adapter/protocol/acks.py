"""
Synchronous ACK / NACK bodies
"""
from typing import Dict, Optional


def ack(context: Optional[Dict] = None) -> Dict:
    body = {"message": {"ack": {"status": "ACK"}}}
    if context:
        body = {"context": context, **body}
    return body


def nack(message: str, error_type: str = "JSON-SCHEMA-ERROR", code: str = "10000",
         context: Optional[Dict] = None) -> Dict:
    body = {
        "message": {"ack": {"status": "NACK"}},
        "error": {"type": error_type, "code": code, "message": message},
    }
    if context:
        body = {"context": context, **body}
    return body
