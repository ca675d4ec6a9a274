"""Cloud backend interface and resolver.

A cloud backend (CPI driver) translates generic VM operations to one cloud
API. Drivers are supplied by the caller; ``CloudFactory`` only maps a CPI
name, or an availability zone name, to the registered driver.

Example:
    >>> factory = CloudFactory({"vsphere-1": vsphere, "aws": aws}, az_cpis={"z1": "aws"})
    >>> cloud = factory.for_availability_zone("z1")
    >>> await cloud.reboot_vm("i-0abc")
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

import structlog

from fleetwarden.errors import UnknownCloudBackend

logger = structlog.get_logger(__name__)


class CloudBackend(Protocol):
    """Operations every cloud backend implements."""

    async def reboot_vm(self, cid: str) -> None:
        ...

    async def create_vm(
        self,
        agent_id: str,
        stemcell_cid: str,
        cloud_properties: dict[str, Any],
        network_settings: dict[str, Any],
        disk_cids: list[str],
        env: dict[str, Any],
    ) -> str:
        """Create a VM and return its cloud ID."""
        ...

    async def delete_vm(self, cid: str) -> None:
        """Delete a VM.

        Raises:
            VMNotFound: If the backend has no VM with this cloud ID.
        """
        ...


class CloudFactory:
    """Resolves cloud backends by CPI name or availability zone.

    An empty or None CPI name resolves to the default backend, which is
    the only backend when exactly one is registered.

    Attributes:
        default_cpi: Name of the backend used when no CPI name is given.
    """

    def __init__(
        self,
        backends: Mapping[str, CloudBackend],
        default_cpi: str | None = None,
        az_cpis: Mapping[str, str] | None = None,
    ) -> None:
        if not backends:
            raise ValueError("At least one cloud backend must be registered")
        if default_cpi is None and len(backends) == 1:
            default_cpi = next(iter(backends))
        if default_cpi is not None and default_cpi not in backends:
            raise UnknownCloudBackend(f"Default CPI '{default_cpi}' is not registered")

        self.default_cpi = default_cpi
        self._backends = dict(backends)
        self._az_cpis = dict(az_cpis or {})

    def get(self, cpi: str | None) -> CloudBackend:
        """Return the backend registered under ``cpi``.

        Raises:
            UnknownCloudBackend: If no backend matches.
        """
        name = cpi or self.default_cpi
        if name is None:
            raise UnknownCloudBackend(
                "No CPI name given and no default CPI configured "
                f"(registered: {sorted(self._backends)})"
            )
        try:
            return self._backends[name]
        except KeyError:
            raise UnknownCloudBackend(
                f"CPI '{name}' is not registered (registered: {sorted(self._backends)})"
            ) from None

    def get_name_for_az(self, az_name: str | None) -> str | None:
        """Return the CPI name serving an availability zone.

        Returns None for zones without an explicit mapping; ``get(None)``
        resolves those to the default backend.
        """
        if az_name is None:
            return None
        return self._az_cpis.get(az_name)

    def for_availability_zone(self, az_name: str | None) -> CloudBackend:
        return self.get(self.get_name_for_az(az_name))
