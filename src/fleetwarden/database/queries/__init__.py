"""Query functions for Fleetwarden database operations.

Each mutating function commits its own change: recovery steps are persisted
one at a time, so a failed recovery leaves the records as the last
completed step wrote them.
"""

from fleetwarden.database.queries.instance import (
    attach_vm,
    detach_active_vm,
    find_instance,
    get_instance,
    set_update_completed,
    update_instance_spec,
)
from fleetwarden.database.queries.stemcell import find_stemcell
from fleetwarden.database.queries.templates import (
    create_templates_archive,
    delete_templates_archive,
    get_latest_templates_archive,
    list_stale_templates_archives,
)

__all__ = [
    # Instance / VM queries
    "attach_vm",
    "detach_active_vm",
    "find_instance",
    "get_instance",
    "set_update_completed",
    "update_instance_spec",
    # Stemcell queries
    "find_stemcell",
    # Rendered templates archive queries
    "create_templates_archive",
    "delete_templates_archive",
    "get_latest_templates_archive",
    "list_stale_templates_archives",
]
