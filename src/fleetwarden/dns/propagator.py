"""DNS record propagation for recreated instances.

Every network of an instance gets two records, one named by the instance
index and one by its UUID, both pointing at the network's IP. The full set
goes to the record-style (local) backend and to the authoritative backend
in one call each, and the authoritative backend's cache is flushed
afterwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

from fleetwarden.dns.names import dns_record_name

if TYPE_CHECKING:
    from fleetwarden.config import DnsConfig
    from fleetwarden.database.models.instance import Instance

logger = structlog.get_logger(__name__)


class DnsRecordBackend(Protocol):
    """Stores the DNS records of an instance."""

    async def update_records(self, instance_id: str, records: dict[str, str]) -> None:
        """Replace the records of ``instance_id`` with ``records`` (name -> IP)."""
        ...


class AuthoritativeDnsBackend(DnsRecordBackend, Protocol):
    """Record backend answering queries directly, with a resolver cache."""

    async def flush_cache(self) -> None:
        ...


class DnsPropagator:
    """Publishes an instance's DNS names to both DNS backends.

    Attributes:
        root_domain: Root domain appended to every record name.
    """

    def __init__(
        self,
        local_backend: DnsRecordBackend,
        authoritative_backend: AuthoritativeDnsBackend,
        root_domain: str,
    ) -> None:
        self.root_domain = root_domain
        self._local = local_backend
        self._authoritative = authoritative_backend
        self._logger = logger.bind(component="DnsPropagator")

    @classmethod
    def from_config(
        cls,
        local_backend: DnsRecordBackend,
        authoritative_backend: AuthoritativeDnsBackend,
        config: DnsConfig,
    ) -> DnsPropagator:
        return cls(local_backend, authoritative_backend, root_domain=config.root_domain)

    def dns_names_to_ip(self, instance: Instance, apply_spec: dict[str, Any]) -> dict[str, str]:
        """Compute the index- and UUID-based names of every network.

        Networks without an assigned IP produce no records.
        """
        records: dict[str, str] = {}
        deployment_name = instance.deployment.name

        for network_name, network in (apply_spec.get("networks") or {}).items():
            ip = (network or {}).get("ip")
            if not ip:
                self._logger.warning(
                    "dns_network_without_ip",
                    instance=instance.name,
                    network=network_name,
                )
                continue

            for hostname in (instance.index, instance.uuid):
                name = dns_record_name(
                    hostname,
                    instance.job,
                    network_name,
                    deployment_name,
                    self.root_domain,
                )
                records[name] = ip

        return records

    async def propagate(self, instance: Instance, apply_spec: dict[str, Any]) -> dict[str, str]:
        """Push the instance's records to both backends and flush the cache.

        Returns:
            The name -> IP mapping that was published.
        """
        records = self.dns_names_to_ip(instance, apply_spec)

        self._logger.debug(
            "dns_records_updating",
            instance=instance.name,
            records=records,
        )
        await self._authoritative.update_records(instance.uuid, dict(records))
        await self._local.update_records(instance.uuid, dict(records))
        await self._authoritative.flush_cache()

        self._logger.info(
            "dns_records_updated",
            instance=instance.name,
            record_count=len(records),
        )
        return records
