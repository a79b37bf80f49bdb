from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType

from ..errors import EndpointNotFound
from ..services import Service

# DEFAULT_PORT_S3 = 4572, anywhere in the file, surrounding text ignored
_PORT_RE = re.compile(r"DEFAULT_PORT_([A-Za-z0-9_]+)\s*=\s*([0-9]+)")


def parse_ports(text: str) -> dict[str, int]:
    """
    Extract every `DEFAULT_PORT_<NAME> = <port>` assignment from the emulator config.

    Names are returned upper-cased. If a name is assigned more than once, the
    last assignment wins.
    """
    ports: dict[str, int] = {}
    for match in _PORT_RE.finditer(text):
        ports[match.group(1).upper()] = int(match.group(2))
    return ports


def _key(service: str | Service) -> str:
    name = service.value if isinstance(service, Service) else str(service)
    return name.strip().upper()


class ServiceEndpoints:
    """
    Read-only service → port table captured from a running emulator.

    Built once when the config artifact is read; lookups never rescan the text.
    """

    def __init__(self, ports: Mapping[str, int], host: str = "localhost") -> None:
        self._ports = MappingProxyType({k.upper(): int(v) for k, v in ports.items()})
        self.host = host

    @classmethod
    def from_config(cls, text: str, host: str = "localhost") -> ServiceEndpoints:
        return cls(parse_ports(text), host=host)

    @property
    def ports(self) -> Mapping[str, int]:
        return self._ports

    def __contains__(self, service: object) -> bool:
        if not isinstance(service, str):
            return False
        return _key(service) in self._ports

    def __len__(self) -> int:
        return len(self._ports)

    def port(self, service: str | Service) -> int:
        """Return the port of `service` (case-insensitive), or raise EndpointNotFound."""
        try:
            return self._ports[_key(service)]
        except KeyError:
            name = service.value if isinstance(service, Service) else str(service)
            raise EndpointNotFound(name) from None

    def resolve(self, service: str | Service) -> str:
        """Return the base URL of `service`, e.g. `http://localhost:4572/`."""
        return f"http://{self.host}:{self.port(service)}/"

    def as_urls(self) -> dict[str, str]:
        """Base URL of every service in the table, keyed by lower-cased service name."""
        return {name.lower(): f"http://{self.host}:{port}/" for name, port in self._ports.items()}

    def __repr__(self) -> str:
        return f"ServiceEndpoints(host={self.host!r}, ports={dict(self._ports)!r})"
