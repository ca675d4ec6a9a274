"""Initial schema: deployments, instances, VMs, disks, stemcells, templates.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _identity(table: str) -> list[sa.SchemaItem]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=f"pk_{table}"),
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "deployments",
        *_identity("deployments"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.UniqueConstraint("name", name="uq_deployments_name"),
        *_timestamps(),
    )

    op.create_table(
        "instances",
        *_identity("instances"),
        sa.Column(
            "deployment_id",
            sa.Uuid(),
            sa.ForeignKey("deployments.id", name="fk_instances_deployment_id_deployments"),
            nullable=False,
        ),
        sa.Column("job", sa.Text(), nullable=False),
        sa.Column("index", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.Text(), nullable=False),
        sa.Column("availability_zone", sa.Text(), nullable=True),
        sa.Column("cloud_properties", sa.JSON(), nullable=True),
        sa.Column("state", sa.Text(), nullable=False, server_default="started"),
        sa.Column("spec", sa.JSON(), nullable=True),
        sa.Column("vm_env", sa.JSON(), nullable=True),
        sa.Column("update_completed", sa.Boolean(), nullable=False, server_default=sa.true()),
        # No foreign key; vms.instance_id already references instances.
        sa.Column("active_vm_id", sa.Uuid(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_instances_deployment_job_index",
        "instances",
        ["deployment_id", "job", "index"],
        unique=True,
    )
    op.create_index("ix_instances_uuid", "instances", ["uuid"], unique=True)

    op.create_table(
        "vms",
        *_identity("vms"),
        sa.Column(
            "instance_id",
            sa.Uuid(),
            sa.ForeignKey(
                "instances.id",
                name="fk_vms_instance_id_instances",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("cid", sa.Text(), nullable=True),
        sa.Column("cpi", sa.Text(), nullable=True),
        sa.Column("agent_id", sa.Text(), nullable=False),
        sa.Column("env", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_vms_instance_id", "vms", ["instance_id"])
    op.create_index("ix_vms_agent_id", "vms", ["agent_id"], unique=True)

    op.create_table(
        "persistent_disks",
        *_identity("persistent_disks"),
        sa.Column(
            "instance_id",
            sa.Uuid(),
            sa.ForeignKey(
                "instances.id",
                name="fk_persistent_disks_instance_id_instances",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("disk_cid", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False, server_default=""),
        sa.Column("size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("cloud_properties", sa.JSON(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "stemcells",
        *_identity("stemcells"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("version", sa.Text(), nullable=False),
        sa.Column("cid", sa.Text(), nullable=False),
        sa.Column("cpi", sa.Text(), nullable=False, server_default=""),
        sa.Column("operating_system", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_stemcells_name_version_cpi",
        "stemcells",
        ["name", "version", "cpi"],
        unique=True,
    )

    op.create_table(
        "rendered_templates_archives",
        *_identity("rendered_templates_archives"),
        sa.Column(
            "instance_id",
            sa.Uuid(),
            sa.ForeignKey(
                "instances.id",
                name="fk_rendered_templates_archives_instance_id_instances",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("blobstore_id", sa.Text(), nullable=False),
        sa.Column("sha1", sa.Text(), nullable=False),
        sa.Column("content_sha1", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_rendered_templates_archives_instance_id",
        "rendered_templates_archives",
        ["instance_id"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_rendered_templates_archives_instance_id",
        table_name="rendered_templates_archives",
    )
    op.drop_table("rendered_templates_archives")
    op.drop_index("ix_stemcells_name_version_cpi", table_name="stemcells")
    op.drop_table("stemcells")
    op.drop_table("persistent_disks")
    op.drop_index("ix_vms_agent_id", table_name="vms")
    op.drop_index("ix_vms_instance_id", table_name="vms")
    op.drop_table("vms")
    op.drop_index("ix_instances_uuid", table_name="instances")
    op.drop_index("ix_instances_deployment_job_index", table_name="instances")
    op.drop_table("instances")
    op.drop_table("deployments")
