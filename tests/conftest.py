"""Shared fixtures: in-memory database, seed helpers, API client."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "q7Lm2Vx9Rt4Np6Zc8Bw1Hs3Jd5Kf0GyA")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal
from typing import Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from arena_admin.models import (
    Base,
    DepositRequest,
    Lottery,
    LotteryParticipant,
    MatchType,
    Tournament,
    TournamentParticipant,
    TournamentStatus,
    TransactionStatus,
    TransactionType,
    User,
    WalletTransaction,
    WithdrawalRequest,
)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


# =============================================================================
# Seed Helpers
# =============================================================================


class Seeder:
    """Writes fixtures rows and reads back committed state."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def add(self, *rows):
        async with self.session_factory() as session, session.begin():
            session.add_all(rows)
        return rows[0] if len(rows) == 1 else rows

    async def get(self, model, row_id):
        async with self.session_factory() as session:
            return await session.get(model, row_id)

    async def user(
        self,
        deposited: str = "0",
        winning: str = "0",
        bonus: str = "0",
        fcm_token: Optional[str] = None,
        name: str = "Player",
    ) -> User:
        deposited, winning, bonus = Decimal(deposited), Decimal(winning), Decimal(bonus)
        return await self.add(
            User(
                id=str(uuid4()),
                display_name=name,
                email=f"{name.lower()}@example.com",
                fcm_token=fcm_token,
                deposited_balance=deposited,
                winning_balance=winning,
                bonus_balance=bonus,
                wallet_balance=deposited + winning + bonus,
            )
        )

    async def deposit(self, user: User, amount: str, utr: Optional[str] = "UTR123", linked: bool = True):
        txn = None
        if linked:
            txn = WalletTransaction(
                id=str(uuid4()),
                user_id=user.id,
                tx_type=TransactionType.DEPOSIT,
                status=TransactionStatus.PENDING,
                amount=Decimal(amount),
                description="Deposit Request",
            )
        request = DepositRequest(
            id=str(uuid4()),
            user_id=user.id,
            user_name=user.display_name,
            amount=Decimal(amount),
            utr=utr,
            transaction_id=txn.id if txn else None,
        )
        await self.add(*([txn] if txn else []), request)
        return request

    async def withdrawal(self, user: User, amount: str, method: str = "upi"):
        txn = WalletTransaction(
            id=str(uuid4()),
            user_id=user.id,
            tx_type=TransactionType.WITHDRAWAL,
            status=TransactionStatus.PENDING,
            amount=Decimal(amount),
            description="Withdrawal Request",
        )
        request = WithdrawalRequest(
            id=str(uuid4()),
            user_id=user.id,
            user_name=user.display_name,
            amount=Decimal(amount),
            payment_method=method,
            transaction_id=txn.id,
        )
        await self.add(txn, request)
        return request

    async def tournament(
        self,
        match_type: MatchType = MatchType.SOLO,
        entry_fee: str = "0",
        per_kill_prize: str = "0",
        prizes: tuple = ("0", "0", "0"),
        status: TournamentStatus = TournamentStatus.LIVE,
        name: str = "Friday Showdown",
    ) -> Tournament:
        return await self.add(
            Tournament(
                id=str(uuid4()),
                name=name,
                match_type=match_type,
                status=status,
                entry_fee=Decimal(entry_fee),
                per_kill_prize=Decimal(per_kill_prize),
                prize1=Decimal(prizes[0]),
                prize2=Decimal(prizes[1]),
                prize3=Decimal(prizes[2]),
            )
        )

    async def participant(self, tournament: Tournament, user: User, slot: int = 0, order: int = 0):
        return await self.add(
            TournamentParticipant(
                id=str(uuid4()),
                tournament_id=tournament.id,
                user_id=user.id,
                user_name=user.display_name,
                game_id=f"G-{user.display_name}",
                slot_number=slot,
                joined_order=order,
            )
        )

    async def lottery(self, prize: str, users=()):
        lottery = Lottery(id=str(uuid4()), title="Weekend Jackpot", prize_amount=Decimal(prize))
        entries = [
            LotteryParticipant(lottery_id=lottery.id, user_id=u.id, user_name=u.display_name)
            for u in users
        ]
        await self.add(lottery, *entries)
        return lottery

    async def transactions(self, user_id: str, tx_type: Optional[TransactionType] = None):
        async with self.session_factory() as session:
            query = select(WalletTransaction).where(WalletTransaction.user_id == user_id)
            if tx_type:
                query = query.where(WalletTransaction.tx_type == tx_type)
            return list((await session.execute(query)).scalars().all())


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)
