"""
Grafana Loki log shipping.

A logging.Handler that pushes each formatted record to a Loki push endpoint,
labelled with the host name.
"""

import json
import logging
import socket
import time
from typing import Dict, Optional

import requests


class LokiHandler(logging.Handler):
    """Push log records to Loki."""

    def __init__(
        self,
        endpoint: str,
        labels: Optional[Dict[str, str]] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        level: int = logging.DEBUG,
    ):
        """
        Args:
            endpoint: Loki push URL, e.g. http://loki:3100/loki/api/v1/push
            labels: Extra stream labels
            timeout: HTTP timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        super().__init__(level)
        try:
            hostname = socket.gethostname()
        except OSError:
            hostname = "unknown"
        self.endpoint = endpoint
        self.labels = {"hostname": hostname, "app": "swarmcheck", **(labels or {})}
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(self, record: logging.LogRecord) -> Dict:
        """Loki push body for one record."""
        stream = dict(self.labels)
        stream["level"] = record.levelname.lower()
        timestamp_ns = str(int(record.created * 1e9) if record.created else time.time_ns())
        return {
            "streams": [
                {
                    "stream": stream,
                    "values": [[timestamp_ns, self.format(record)]],
                }
            ]
        }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            response = self.session.post(
                self.endpoint,
                data=json.dumps(self.build_payload(record)),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            if response.status_code not in (200, 204):
                raise requests.HTTPError(
                    f"error posting loki batch ({response.status_code}): {response.text}"
                )
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            self.session.close()
        finally:
            super().close()
