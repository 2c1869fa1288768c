"""
=============================================================================
ACCESS LOG
=============================================================================

One structured record per dispatched line, on the "dllbridge.access"
logger so it can be routed separately from the diagnostic logs:

    logging.getLogger("dllbridge.access").addHandler(file_handler)

Text format:

    127.0.0.1 [a1b2c3d4] [19/Oct/2026:10:21:07 +0000] "add" OK "7" 0.08ms

JSON format:

    {"connection_id": "a1b2c3d4", "client_ip": "127.0.0.1",
     "function": "add", "ok": true, "response": "7", ...}

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Optional


logger = logging.getLogger("dllbridge.access")


@dataclass
class CallLog:
    """Structured log entry for one request line."""

    connection_id: str
    client_ip: str
    function: Optional[str]
    ok: bool
    response: str
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "client_ip": self.client_ip,
            "function": self.function,
            "ok": self.ok,
            "response": self.response,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        outcome = "OK" if self.ok else "ERR"
        return (
            f'{self.client_ip} [{self.connection_id}] [{self.timestamp}] '
            f'"{self.function or "-"}" {outcome} "{self.response}" '
            f'{self.duration_ms:.2f}ms'
        )


class AccessLogger:
    """
    Emits CallLog entries.

    Args:
        log_format: "text" or "json".
        log_level: Level the entries are logged at.
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def record(
        self,
        connection_id: str,
        client_ip: str,
        function: Optional[str],
        ok: bool,
        response: str,
        duration_ms: float,
    ) -> CallLog:
        """Build a CallLog entry and emit it."""
        entry = CallLog(
            connection_id=connection_id,
            client_ip=client_ip,
            function=function,
            ok=ok,
            response=response,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        return entry
