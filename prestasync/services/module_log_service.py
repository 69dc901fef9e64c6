from typing import Any, Dict, List, Optional
import structlog
from sqlalchemy import select, delete, desc
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.models.database import ModuleLog
from prestasync.utils.helpers import utcnow

logger = structlog.get_logger()

class ModuleLogService:
    """Append-only audit trail of sync and API activity per site"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        site_id: int,
        type: str,
        status: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> ModuleLog:
        entry = ModuleLog(
            site_id=site_id,
            type=type,
            status=status,
            message=message,
            details=details,
            created_at=utcnow(),
        )
        self.db.add(entry)
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()
        return entry

    async def list_for_site(self, site_id: int, limit: int = 100) -> List[ModuleLog]:
        stmt = (
            select(ModuleLog)
            .where(ModuleLog.site_id == site_id)
            .order_by(desc(ModuleLog.created_at), desc(ModuleLog.id))
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def clear(self, site_id: int, commit: bool = True) -> int:
        result = await self.db.execute(delete(ModuleLog).where(ModuleLog.site_id == site_id))
        if commit:
            await self.db.commit()
        logger.info("Cleared module logs", site_id=site_id, deleted=result.rowcount)
        return result.rowcount
