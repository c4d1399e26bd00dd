"""Entitlement and generation quota.

Entitled (premium) users get a daily generation allowance that resets at the
start of each UTC day. Everyone else spends credits; new users start with
`free_lifetime_credits`. Consumption is a conditional UPDATE so two
concurrent requests can never both spend the last unit.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..db import SessionLocal, db_errors
from ..models import CreditTransaction, UserQuota
from ..schemas import QuotaState
from ..settings import settings

logger = logging.getLogger("recipefinder.quota")


class EntitlementService(Protocol):
    async def is_entitled(self, user_id: str) -> bool: ...

    async def check_and_consume_quota(self, user_id: str, amount: int = 1) -> bool: ...

    async def get_quota(self, user_id: str) -> QuotaState: ...

    async def grant_credits(self, user_id: str, amount: int) -> QuotaState: ...


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class SqlEntitlementService:
    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        *,
        daily_limit: Optional[int] = None,
        free_credits: Optional[int] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._session_factory = session_factory
        self.daily_limit = daily_limit if daily_limit is not None else settings.premium_daily_generation_limit
        self.free_credits = free_credits if free_credits is not None else settings.free_lifetime_credits
        self.today = today or utc_today

    def _session(self) -> Session:
        factory = self._session_factory or SessionLocal()
        return factory()

    def _get_or_create(self, db: Session, user_id: str) -> UserQuota:
        row = db.get(UserQuota, user_id)
        if row is None:
            row = UserQuota(
                user_id=user_id,
                is_premium=False,
                credits_remaining=self.free_credits,
                daily_generations_used=0,
                daily_generation_limit=self.daily_limit,
                last_daily_reset=self.today(),
                lifetime_credits_spent=0,
            )
            db.add(row)
            db.flush()
        return row

    def _reset_daily_if_needed(self, db: Session, row: UserQuota) -> None:
        today = self.today()
        if row.last_daily_reset != today:
            row.daily_generations_used = 0
            row.last_daily_reset = today
            db.flush()

    # --- sync implementations (run in a worker thread) ---

    def _is_entitled(self, user_id: str) -> bool:
        with db_errors("entitlement lookup"), self._session() as db:
            row = db.get(UserQuota, user_id)
            return bool(row and row.is_premium)

    def _consume(self, user_id: str, amount: int) -> bool:
        with db_errors("quota consume"), self._session() as db:
            row = self._get_or_create(db, user_id)
            self._reset_daily_if_needed(db, row)

            if row.is_premium:
                stmt = (
                    update(UserQuota)
                    .where(
                        UserQuota.user_id == user_id,
                        UserQuota.daily_generations_used + amount <= UserQuota.daily_generation_limit,
                    )
                    .values(daily_generations_used=UserQuota.daily_generations_used + amount)
                )
                txn_type = "daily"
            else:
                stmt = (
                    update(UserQuota)
                    .where(
                        UserQuota.user_id == user_id,
                        UserQuota.credits_remaining >= amount,
                    )
                    .values(
                        credits_remaining=UserQuota.credits_remaining - amount,
                        lifetime_credits_spent=UserQuota.lifetime_credits_spent + amount,
                    )
                )
                txn_type = "spend"

            result = db.execute(stmt)
            if result.rowcount != 1:
                db.commit()  # keep a freshly created row
                logger.info(f"Quota exhausted for user {user_id} (premium={row.is_premium})")
                return False

            db.add(CreditTransaction(
                user_id=user_id,
                transaction_type=txn_type,
                amount=amount,
                action="recipe_generation",
                description="Recipe generation attempt",
            ))
            db.commit()
            return True

    def _get_quota(self, user_id: str) -> QuotaState:
        with db_errors("quota read"), self._session() as db:
            row = self._get_or_create(db, user_id)
            self._reset_daily_if_needed(db, row)
            db.commit()
            return QuotaState(
                user_id=row.user_id,
                is_entitled=row.is_premium,
                credits_remaining=row.credits_remaining,
                daily_generations_used=row.daily_generations_used,
                daily_generation_limit=row.daily_generation_limit,
            )

    def _grant(self, user_id: str, credits: int, premium: Optional[bool]) -> QuotaState:
        with db_errors("quota grant"), self._session() as db:
            row = self._get_or_create(db, user_id)
            if credits:
                row.credits_remaining += credits
                db.add(CreditTransaction(
                    user_id=user_id,
                    transaction_type="grant",
                    amount=credits,
                    action="credit_grant",
                ))
            if premium is not None:
                row.is_premium = premium
            db.commit()
        return self._get_quota(user_id)

    # --- async API ---

    async def is_entitled(self, user_id: str) -> bool:
        return await asyncio.to_thread(self._is_entitled, user_id)

    async def check_and_consume_quota(self, user_id: str, amount: int = 1) -> bool:
        return await asyncio.to_thread(self._consume, user_id, amount)

    async def get_quota(self, user_id: str) -> QuotaState:
        return await asyncio.to_thread(self._get_quota, user_id)

    async def grant(self, user_id: str, credits: int = 0, premium: Optional[bool] = None) -> QuotaState:
        return await asyncio.to_thread(self._grant, user_id, credits, premium)

    async def grant_credits(self, user_id: str, amount: int) -> QuotaState:
        return await self.grant(user_id, credits=amount)
