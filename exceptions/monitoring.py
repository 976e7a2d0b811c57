"""
Monitoring Exception Classes for Domain Health Monitor

Probe and dispatch failures. Neither ever crosses the orchestrator
or dispatcher boundary: probe errors become failed check records,
dispatch errors become a False channel result.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from exceptions.base import MonitorError


class MonitoringException(MonitorError):
    """Base class for monitoring errors."""

    default_error_code = 4000
    http_status = 502


class ProbeError(MonitoringException):
    """
    Probe Error

    A single network observation (HTTP, TLS, DNS, WHOIS) failed.

    Attributes:
        probe: Probe name (uptime, ssl, dns, whois)
        target: Host or URL being probed
        strategy_errors: Ordered (strategy, reason) pairs when the
            probe tried several strategies
    """

    default_error_code = 4100

    def __init__(
        self,
        message: str,
        probe: Optional[str] = None,
        target: Optional[str] = None,
        strategy_errors: Optional[List[Tuple[str, str]]] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        self.probe = probe
        self.target = target
        self.strategy_errors = list(strategy_errors or [])

        if probe:
            self.details["probe"] = probe
        if target:
            self.details["target"] = target
        if self.strategy_errors:
            self.details["strategies"] = {
                name: reason for name, reason in self.strategy_errors
            }


class DispatchError(MonitoringException):
    """
    Dispatch Error

    A notification provider call failed for one channel/recipient.
    """

    default_error_code = 4200

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        recipient: Optional[str] = None,
        response: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        self.channel = channel
        self.recipient = recipient

        if channel:
            self.details["channel"] = channel
        if recipient:
            self.details["recipient"] = recipient
        if response is not None:
            self.details["response"] = response
