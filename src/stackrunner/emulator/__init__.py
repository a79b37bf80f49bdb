from .endpoints import ServiceEndpoints, parse_ports
from .installer import Installer
from .lifecycle import LifecycleState, LocalStackManager

__all__ = [
    "Installer",
    "LifecycleState",
    "LocalStackManager",
    "ServiceEndpoints",
    "parse_ports",
]
