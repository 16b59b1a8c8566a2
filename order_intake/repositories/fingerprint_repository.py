from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_intake.database.models import FingerprintRecord
from order_intake.repositories.base_repository import BaseRepository


class FingerprintRepository(BaseRepository[FingerprintRecord]):
    """Idempotency fingerprints: one fingerprint maps to at most one downstream order."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, FingerprintRecord)

    async def claim(self, fingerprint: str, case_id: str) -> Optional[FingerprintRecord]:
        """Insert ``fingerprint`` as in flight for ``case_id``.

        Returns None when the claim succeeded, or the existing record when
        another case (or an earlier attempt of this one) already holds it.
        """
        try:
            now = datetime.now(timezone.utc)
            stmt = (
                insert(FingerprintRecord)
                .values(
                    fingerprint=fingerprint,
                    case_id=case_id,
                    status="in_flight",
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=["fingerprint"])
                .returning(FingerprintRecord.fingerprint)
            )
            result = await self.session.execute(stmt)
            inserted = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Error claiming fingerprint for case {case_id}: {str(e)}", exc_info=True)
            raise

        if inserted is not None:
            return None
        return await self.get_by_id(fingerprint)

    async def mark_created(self, fingerprint: str, order_id: str, order_number: Optional[str]) -> Optional[FingerprintRecord]:
        return await self.update(
            fingerprint, status="created", zoho_order_id=order_id, zoho_order_number=order_number
        )

    async def mark_queued(self, fingerprint: str) -> Optional[FingerprintRecord]:
        return await self.update(fingerprint, status="queued")

    async def take_over(self, fingerprint: str, case_id: str) -> Optional[FingerprintRecord]:
        """Hand an abandoned fingerprint to a new case."""
        return await self.update(fingerprint, case_id=case_id, status="in_flight")

    async def mark_abandoned(self, fingerprint: str) -> Optional[FingerprintRecord]:
        return await self.update(fingerprint, status="abandoned")
