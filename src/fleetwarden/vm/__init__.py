"""VM creation and deletion for Fleetwarden."""

from __future__ import annotations

from fleetwarden.vm.creator import ExistingIpProvider, IpProvider, VmCreator
from fleetwarden.vm.deleter import VmDeleter

__all__ = ["ExistingIpProvider", "IpProvider", "VmCreator", "VmDeleter"]
