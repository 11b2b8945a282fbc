"""
Tunnel session supervision: process lifecycle, output sanitizing, URL
discovery and the session state shared with the HTTP layer.
"""

from metrotun.tunnel.log_buffer import LogBuffer, LogEntry, LogKind
from metrotun.tunnel.process import ChildProcess, CleanupStep, ProcessLifecycle
from metrotun.tunnel.session import SessionStatus, TunnelSession
from metrotun.tunnel.supervisor import StartResult, StopResult, TunnelSupervisor

__all__ = [
    "ChildProcess",
    "CleanupStep",
    "LogBuffer",
    "LogEntry",
    "LogKind",
    "ProcessLifecycle",
    "SessionStatus",
    "StartResult",
    "StopResult",
    "TunnelSession",
    "TunnelSupervisor",
]
