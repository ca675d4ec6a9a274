"""Stemcell query functions for Fleetwarden."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetwarden.database.models.stemcell import Stemcell


async def find_stemcell(
    session: AsyncSession,
    name: str,
    version: str,
    cpi: str | None = None,
) -> Stemcell | None:
    """Find the stemcell uploaded to a cloud backend.

    Args:
        session: Active async database session.
        name: Stemcell name.
        version: Stemcell version.
        cpi: Cloud backend name; None or empty selects the default backend.

    Returns:
        The matching Stemcell, or None if it has not been uploaded there.
    """
    stmt = select(Stemcell).where(
        Stemcell.name == name,
        Stemcell.version == version,
        Stemcell.cpi == (cpi or ""),
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
