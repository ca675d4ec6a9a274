"""DNS record naming and propagation for Fleetwarden."""

from __future__ import annotations

from fleetwarden.dns.names import canonical, dns_record_name
from fleetwarden.dns.propagator import (
    AuthoritativeDnsBackend,
    DnsPropagator,
    DnsRecordBackend,
)

__all__ = [
    "AuthoritativeDnsBackend",
    "DnsPropagator",
    "DnsRecordBackend",
    "canonical",
    "dns_record_name",
]
