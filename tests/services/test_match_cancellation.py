"""Tests for match cancellation refunds."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from arena_admin.models import (
    SubBalance,
    Tournament,
    TournamentParticipant,
    TournamentStatus,
    TransactionType,
    User,
)
from arena_admin.services import MatchCancellation
from arena_admin.services.summary import PayoutResult
from arena_admin.utils.errors import InvalidStateError, NotFoundError


@pytest.fixture
def cancellation(session_factory):
    return MatchCancellation(session_factory)


class TestCancelMatch:
    @pytest.mark.asyncio
    async def test_refunds_entry_fee_to_deposited(self, cancellation, seed):
        """Three paid entries of 50 should refund 150 in total."""
        tournament = await seed.tournament(entry_fee="50")
        users = [await seed.user(name=n) for n in ("Asha", "Ravi", "Meera")]
        parts = [await seed.participant(tournament, u, order=i) for i, u in enumerate(users)]

        summary = await cancellation.cancel_match(tournament.id, admin_id="admin-1")

        assert summary.kind == "match_cancellation"
        assert summary.successful == 3
        assert summary.total_credited == Decimal("150")

        for user in users:
            stored = await seed.get(User, user.id)
            assert stored.deposited_balance == Decimal("50")
            assert stored.wallet_balance == Decimal("50")
            [txn] = await seed.transactions(user.id)
            assert txn.tx_type == TransactionType.REFUND
            assert txn.wallet_type == SubBalance.DEPOSITED
            assert txn.description == "Match Cancelled Refund - Friday Showdown"

        stored = await seed.get(Tournament, tournament.id)
        assert stored.status == TournamentStatus.CANCELLED
        assert stored.cancelled_at is not None
        for part in parts:
            assert (await seed.get(TournamentParticipant, part.id)).refunded_at is not None

    @pytest.mark.asyncio
    async def test_second_cancel_does_not_refund_again(self, cancellation, seed):
        tournament = await seed.tournament(entry_fee="50")
        user = await seed.user()
        await seed.participant(tournament, user)
        await cancellation.cancel_match(tournament.id)

        with pytest.raises(InvalidStateError):
            await cancellation.cancel_match(tournament.id)

        assert (await seed.get(User, user.id)).deposited_balance == Decimal("50")
        assert len(await seed.transactions(user.id)) == 1

    @pytest.mark.asyncio
    async def test_rerun_refunds_only_failed_participants(self, cancellation, seed):
        """Should resume a partially refunded cancellation."""
        tournament = await seed.tournament(entry_fee="50")
        user = await seed.user(name="Asha")
        await seed.participant(tournament, user, order=0)
        missing = await seed.participant(
            tournament, SimpleNamespace(id="ghost-user", display_name="Ghost"), order=1
        )

        summary = await cancellation.cancel_match(tournament.id)

        assert summary.successful == 1
        assert summary.failed == 1
        assert (await seed.get(TournamentParticipant, missing.id)).refunded_at is None

        await seed.add(User(id="ghost-user", display_name="Ghost"))
        retry = await cancellation.cancel_match(tournament.id)

        assert retry.successful == 1
        assert retry.payouts[0].participant_id == missing.id
        assert (await seed.get(User, user.id)).deposited_balance == Decimal("50")
        assert (await seed.get(User, "ghost-user")).deposited_balance == Decimal("50")

    @pytest.mark.asyncio
    async def test_free_entry_marks_without_transactions(self, cancellation, seed):
        tournament = await seed.tournament(entry_fee="0")
        user = await seed.user()
        part = await seed.participant(tournament, user)

        summary = await cancellation.cancel_match(tournament.id)

        assert summary.successful == 1
        assert summary.total_credited == Decimal("0")
        assert await seed.transactions(user.id) == []
        assert (await seed.get(TournamentParticipant, part.id)).refunded_at is not None

    @pytest.mark.asyncio
    async def test_finished_tournament_cannot_be_cancelled(self, cancellation, seed):
        tournament = await seed.tournament(entry_fee="50", status=TournamentStatus.FINISHED)
        user = await seed.user()
        await seed.participant(tournament, user)

        with pytest.raises(InvalidStateError):
            await cancellation.cancel_match(tournament.id)

        assert (await seed.get(User, user.id)).wallet_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, cancellation):
        with pytest.raises(NotFoundError):
            await cancellation.cancel_match("missing")

    @pytest.mark.asyncio
    async def test_tournament_with_settled_results_cannot_be_cancelled(self, cancellation, seed):
        tournament = await seed.tournament(entry_fee="50")
        user = await seed.user()
        part = await seed.participant(tournament, user)
        async with seed.session_factory() as session, session.begin():
            stored = await session.get(TournamentParticipant, part.id)
            stored.settlement_version = 1
            stored.previous_earnings = Decimal("30")

        with pytest.raises(InvalidStateError):
            await cancellation.cancel_match(tournament.id)

        assert (await seed.get(Tournament, tournament.id)).status == TournamentStatus.LIVE
        assert await seed.transactions(user.id) == []


class TestRefundMarker:
    @pytest.mark.asyncio
    async def test_second_refund_of_same_participant_is_rejected(self, cancellation, seed):
        """Two refunds racing for one participant should credit once."""
        tournament = await seed.tournament(entry_fee="50")
        user = await seed.user(name="Asha")
        part = await seed.participant(tournament, user)

        def payout():
            return PayoutResult(
                participant_id=part.id,
                user_id=user.id,
                user_name="Asha",
                delta=Decimal("50"),
            )

        await cancellation._refund_participant(tournament, part, payout(), None)
        with pytest.raises(InvalidStateError):
            await cancellation._refund_participant(tournament, part, payout(), None)

        stored = await seed.get(User, user.id)
        assert stored.deposited_balance == Decimal("50")
        assert stored.wallet_balance == Decimal("50")
        assert len(await seed.transactions(user.id)) == 1
