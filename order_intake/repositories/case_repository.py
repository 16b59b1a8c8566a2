from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_intake.database.models import CaseEventRecord, OrderCaseRecord
from order_intake.repositories.base_repository import BaseRepository


class CaseRepository(BaseRepository[OrderCaseRecord]):
    """Repository for the ``order_cases`` projection."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, OrderCaseRecord)

    async def create_case(
        self,
        case_id: str,
        tenant_id: str,
        user_id: str,
        correlation_id: str,
        file_blob_reference: Optional[str] = None,
        status: str = "storing_file",
    ) -> OrderCaseRecord:
        now = datetime.now(timezone.utc)
        return await self.create(
            case_id=case_id,
            tenant_id=tenant_id,
            user_id=user_id,
            correlation_id=correlation_id,
            file_blob_reference=file_blob_reference,
            status=status,
            revision=0,
            created_at=now,
            updated_at=now,
        )

    async def list_cases(
        self,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[OrderCaseRecord]:
        """List cases newest first, filtered by tenant, user and status."""
        try:
            query = select(OrderCaseRecord)
            if tenant_id:
                query = query.where(OrderCaseRecord.tenant_id == tenant_id)
            if user_id:
                query = query.where(OrderCaseRecord.user_id == user_id)
            if status:
                query = query.where(OrderCaseRecord.status == status)
            query = query.order_by(OrderCaseRecord.created_at.desc()).offset(skip).limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing cases: {str(e)}", exc_info=True)
            raise


class CaseEventRepository(BaseRepository[CaseEventRecord]):
    """Append-only access to ``case_events``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CaseEventRecord)

    async def next_sequence(self, case_id: str) -> int:
        try:
            query = select(func.coalesce(func.max(CaseEventRecord.sequence), 0)).where(
                CaseEventRecord.case_id == case_id
            )
            result = await self.session.execute(query)
            return int(result.scalar_one()) + 1
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading event sequence for case {case_id}: {str(e)}", exc_info=True)
            raise

    async def append(
        self,
        case_id: str,
        event_type: str,
        status: str,
        actor: Optional[str] = None,
        correlation_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> CaseEventRecord:
        sequence = await self.next_sequence(case_id)
        return await self.create(
            case_id=case_id,
            sequence=sequence,
            event_type=event_type,
            status=status,
            actor=actor,
            correlation_id=correlation_id,
            payload=payload or {},
            occurred_at=datetime.now(timezone.utc),
        )

    async def list_for_case(self, case_id: str) -> List[CaseEventRecord]:
        try:
            query = (
                select(CaseEventRecord)
                .where(CaseEventRecord.case_id == case_id)
                .order_by(CaseEventRecord.sequence)
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing events for case {case_id}: {str(e)}", exc_info=True)
            raise
