"""Fleetwarden - VM lifecycle reconciliation for managed instance fleets.

This package resolves problems detected on managed instances: it reboots,
deletes or recreates the cloud VM attached to an instance record while
keeping DNS records, rendered templates and convergence state consistent.
"""

__version__ = "0.1.0"
