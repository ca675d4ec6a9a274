"""Unit tests for DNS record naming and propagation."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from fleetwarden.config import DnsConfig
from fleetwarden.dns.names import canonical, dns_record_name
from fleetwarden.dns.propagator import DnsPropagator


class RecordingBackend:
    def __init__(self, journal: list[tuple[str, Any]], label: str) -> None:
        self.journal = journal
        self.label = label

    async def update_records(self, instance_id: str, records: dict[str, str]) -> None:
        self.journal.append((f"{self.label}.update_records", (instance_id, records)))

    async def flush_cache(self) -> None:
        self.journal.append((f"{self.label}.flush_cache", None))


def _instance(**overrides: Any) -> SimpleNamespace:
    fields: dict[str, Any] = {
        "job": "worker",
        "index": 0,
        "uuid": "u1",
        "name": "worker/u1",
        "deployment": SimpleNamespace(name="d1"),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("worker", "worker"),
        ("Web_Server", "web-server"),
        ("db.primary!", "dbprimary"),
        ("z-1", "z-1"),
    ],
)
def test_canonical(name: str, expected: str) -> None:
    assert canonical(name) == expected


def test_canonical_rejects_empty_result() -> None:
    with pytest.raises(ValueError, match="Invalid DNS canonical name"):
        canonical("!!!")


def test_record_name_canonicalises_labels() -> None:
    assert dns_record_name("ABC-uuid", "Web_Server", "Private_Net", "My_Dep", "bosh") == (
        "abc-uuid.web-server.private-net.my-dep.bosh"
    )


# ---------------------------------------------------------------------------
# Propagator
# ---------------------------------------------------------------------------


def test_names_for_each_network() -> None:
    propagator = DnsPropagator(None, None, root_domain="bosh")  # type: ignore[arg-type]
    spec = {
        "networks": {
            "a": {"ip": "10.0.0.5"},
            "b": {"ip": "10.1.0.5"},
        }
    }

    assert propagator.dns_names_to_ip(_instance(), spec) == {
        "0.worker.a.d1.bosh": "10.0.0.5",
        "u1.worker.a.d1.bosh": "10.0.0.5",
        "0.worker.b.d1.bosh": "10.1.0.5",
        "u1.worker.b.d1.bosh": "10.1.0.5",
    }


def test_networks_without_ip_are_skipped() -> None:
    propagator = DnsPropagator(None, None, root_domain="bosh")  # type: ignore[arg-type]
    spec = {"networks": {"dynamic": {"type": "dynamic"}, "a": {"ip": "10.0.0.5"}}}

    records = propagator.dns_names_to_ip(_instance(), spec)

    assert set(records) == {"0.worker.a.d1.bosh", "u1.worker.a.d1.bosh"}


def test_root_domain_comes_from_config() -> None:
    propagator = DnsPropagator.from_config(None, None, DnsConfig(root_domain="fleet.internal"))  # type: ignore[arg-type]

    records = propagator.dns_names_to_ip(_instance(), {"networks": {"a": {"ip": "10.0.0.5"}}})

    assert propagator.root_domain == "fleet.internal"
    assert set(records) == {"0.worker.a.d1.fleet.internal", "u1.worker.a.d1.fleet.internal"}


def test_no_networks_means_no_records() -> None:
    propagator = DnsPropagator(None, None, root_domain="bosh")  # type: ignore[arg-type]

    assert propagator.dns_names_to_ip(_instance(), {}) == {}


@pytest.mark.asyncio
async def test_propagate_updates_both_backends_then_flushes() -> None:
    journal: list[tuple[str, Any]] = []
    propagator = DnsPropagator(
        RecordingBackend(journal, "local"),
        RecordingBackend(journal, "authoritative"),
        root_domain="bosh",
    )

    records = await propagator.propagate(_instance(), {"networks": {"a": {"ip": "10.0.0.5"}}})

    expected = {"0.worker.a.d1.bosh": "10.0.0.5", "u1.worker.a.d1.bosh": "10.0.0.5"}
    assert records == expected
    assert journal == [
        ("authoritative.update_records", ("u1", expected)),
        ("local.update_records", ("u1", expected)),
        ("authoritative.flush_cache", None),
    ]
