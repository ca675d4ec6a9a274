"""DNS record name generation.

Record names have the form ``<host>.<job>.<network>.<deployment>.<root>``
where ``<host>`` is an instance index or UUID. Job, network and deployment
labels are canonicalised: lower-cased, underscores become dashes, and
anything outside ``[a-z0-9-]`` is dropped.
"""

from __future__ import annotations

import re

_INVALID_LABEL_CHARS = re.compile(r"[^a-z0-9-]")


def canonical(name: str) -> str:
    """Canonicalise a name for use as a DNS label.

    Raises:
        ValueError: If nothing is left after canonicalisation.
    """
    label = _INVALID_LABEL_CHARS.sub("", name.lower().replace("_", "-"))
    if not label:
        raise ValueError(f"Invalid DNS canonical name '{name}'")
    return label


def dns_record_name(
    hostname: str | int,
    job_name: str,
    network_name: str,
    deployment_name: str,
    root_domain: str,
) -> str:
    """Build the DNS record name of one instance on one network.

    >>> dns_record_name(0, "worker", "a", "d1", "bosh")
    '0.worker.a.d1.bosh'
    """
    return ".".join(
        [
            str(hostname).lower(),
            canonical(job_name),
            canonical(network_name),
            canonical(deployment_name),
            root_domain,
        ]
    )
