from .config.loader import load_settings
from .config.models import Settings
from .emulator import LifecycleState, LocalStackManager, ServiceEndpoints
from .errors import (
    CommandFailed,
    EndpointNotFound,
    InstallationFailed,
    NotReady,
    StackRunnerError,
    StartupFailed,
    StartupTimeout,
)
from .services import Service

__all__ = [
    "CommandFailed",
    "EndpointNotFound",
    "InstallationFailed",
    "LifecycleState",
    "LocalStackManager",
    "NotReady",
    "Service",
    "ServiceEndpoints",
    "Settings",
    "StackRunnerError",
    "StartupFailed",
    "StartupTimeout",
    "load_settings",
]
