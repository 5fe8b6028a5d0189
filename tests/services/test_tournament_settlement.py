"""Tests for tournament result settlement.

Covers earnings computation, first announcement, delta-based
corrections, team prize splits and resuming after partial failure.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import update

from arena_admin.models import (
    MatchType,
    SubBalance,
    Tournament,
    TournamentParticipant,
    TournamentStatus,
    TransactionType,
    User,
    WalletTransaction,
)
from arena_admin.services import (
    LedgerService,
    MatchCancellation,
    ParticipantResult,
    TournamentSettlement,
    Winners,
    compute_earnings,
)
from arena_admin.services.tournament_settlement import split_prize, team_sizes
from arena_admin.utils.errors import (
    InvalidStateError,
    NotFoundError,
    PartialFailure,
    ValidationError,
)


@pytest.fixture
def settlement(session_factory):
    return TournamentSettlement(session_factory)


def results(*pairs):
    return [ParticipantResult(participant_id=p.id, kills=k) for p, k in pairs]


# =============================================================================
# Earnings
# =============================================================================


class TestComputeEarnings:
    """Pure earnings arithmetic."""

    @staticmethod
    def tournament(match_type=MatchType.SOLO, per_kill="10", prizes=("100", "50", "25")):
        return Tournament(
            name="Cup",
            match_type=match_type,
            per_kill_prize=Decimal(per_kill),
            prize1=Decimal(prizes[0]),
            prize2=Decimal(prizes[1]),
            prize3=Decimal(prizes[2]),
        )

    def test_solo_kills_plus_placement(self):
        player = SimpleNamespace(id="p-1", slot_number=0, kills=4)
        earnings = compute_earnings(player, self.tournament(), Winners(second="p-1"))
        assert earnings == Decimal("90.00")

    def test_solo_without_placement(self):
        player = SimpleNamespace(id="p-1", slot_number=0, kills=3)
        earnings = compute_earnings(player, self.tournament(), Winners(first="p-2"))
        assert earnings == Decimal("30.00")

    def test_duo_splits_prize_between_members(self):
        """Should give each duo member half of the placement prize."""
        members = [
            SimpleNamespace(id="a", slot_number=1, kills=0),
            SimpleNamespace(id="b", slot_number=1, kills=2),
            SimpleNamespace(id="c", slot_number=2, kills=0),
        ]
        tournament = self.tournament(MatchType.DUO)
        sizes = team_sizes(members)

        assert compute_earnings(members[0], tournament, Winners(first="1"), sizes) == Decimal("50.00")
        assert compute_earnings(members[1], tournament, Winners(first="1"), sizes) == Decimal("70.00")
        assert compute_earnings(members[2], tournament, Winners(first="1"), sizes) == Decimal("0.00")

    def test_team_split_rounds_down(self):
        assert split_prize(Decimal("100"), 3) == Decimal("33.33")
        assert split_prize(Decimal("100"), 0) == Decimal("0")

    def test_team_slot_accepts_numeric_pick(self):
        member = SimpleNamespace(id="a", slot_number=3, kills=0)
        tournament = self.tournament(MatchType.SQUAD, per_kill="0")
        earnings = compute_earnings(member, tournament, Winners(third=3), {3: 1})
        assert earnings == Decimal("25.00")


# =============================================================================
# Announcement
# =============================================================================


class TestAnnounceResult:
    @pytest.mark.asyncio
    async def test_first_announcement_pays_everyone(self, settlement, seed):
        """Should credit kills plus placement prize to winning balances."""
        tournament = await seed.tournament(per_kill_prize="10", prizes=("100", "50", "25"))
        users = [await seed.user(name=n) for n in ("Asha", "Ravi", "Meera")]
        parts = [await seed.participant(tournament, u, order=i) for i, u in enumerate(users)]

        summary = await settlement.announce_result(
            tournament.id,
            results((parts[0], 5), (parts[1], 2), (parts[2], 0)),
            Winners(first=parts[0].id, second=parts[1].id, third=parts[2].id),
            admin_id="admin-1",
        )

        assert summary.kind == "tournament_result"
        assert not summary.is_correction
        assert summary.successful == 3
        assert summary.failed == 0
        assert summary.total_credited == Decimal("245")

        balances = [(await seed.get(User, u.id)).winning_balance for u in users]
        assert balances == [Decimal("150"), Decimal("70"), Decimal("25")]

        [txn] = await seed.transactions(users[0].id)
        assert txn.tx_type == TransactionType.WINNING
        assert txn.description == "Tournament Winning - Friday Showdown"
        assert txn.kills == 5
        assert txn.previous_earnings == Decimal("0")
        assert txn.new_earnings == Decimal("150")

        stored = await seed.get(Tournament, tournament.id)
        assert stored.status == TournamentStatus.FINISHED
        assert stored.result_announced_at is not None
        assert stored.results["first"] == {
            "participant_id": parts[0].id,
            "name": "Asha",
            "game_id": "G-Asha",
        }

        participant = await seed.get(TournamentParticipant, parts[0].id)
        assert participant.kills == 5
        assert participant.previous_earnings == Decimal("150")

    @pytest.mark.asyncio
    async def test_identical_reannouncement_moves_nothing(self, settlement, seed):
        """Should be idempotent when the same result is posted twice."""
        tournament = await seed.tournament(per_kill_prize="10", prizes=("100", "0", "0"))
        user = await seed.user()
        part = await seed.participant(tournament, user)
        args = (tournament.id, results((part, 3)), Winners(first=part.id))

        await settlement.announce_result(*args)
        summary = await settlement.announce_result(*args)

        assert summary.is_correction
        assert summary.total_credited == Decimal("0")
        assert summary.total_debited == Decimal("0")
        assert (await seed.get(User, user.id)).winning_balance == Decimal("130")
        assert len(await seed.transactions(user.id)) == 1

    @pytest.mark.asyncio
    async def test_correction_settles_only_the_difference(self, settlement, seed):
        """Swapping first and second should move 40 each way."""
        tournament = await seed.tournament(prizes=("100", "60", "0"))
        asha, ravi = await seed.user(name="Asha"), await seed.user(name="Ravi")
        pa = await seed.participant(tournament, asha, order=0)
        pr = await seed.participant(tournament, ravi, order=1)

        await settlement.announce_result(tournament.id, [], Winners(first=pa.id, second=pr.id))
        first_announced = (await seed.get(Tournament, tournament.id)).result_announced_at

        summary = await settlement.announce_result(tournament.id, [], Winners(first=pr.id, second=pa.id))

        assert summary.is_correction
        assert summary.total_credited == Decimal("40")
        assert summary.total_debited == Decimal("40")

        stored_asha = await seed.get(User, asha.id)
        assert stored_asha.winning_balance == Decimal("60")
        assert stored_asha.total_winnings == Decimal("100")

        stored_ravi = await seed.get(User, ravi.id)
        assert stored_ravi.winning_balance == Decimal("100")
        assert stored_ravi.total_winnings == Decimal("100")

        [adjustment] = await seed.transactions(asha.id, TransactionType.WINNING_ADJUSTMENT)
        assert adjustment.amount == Decimal("40")
        assert adjustment.description == "Tournament Winning Correction (-) - Friday Showdown"
        assert adjustment.previous_earnings == Decimal("100")
        assert adjustment.new_earnings == Decimal("60")

        descriptions = sorted(t.description for t in await seed.transactions(ravi.id))
        assert descriptions == [
            "Tournament Winning (Correction +) - Friday Showdown",
            "Tournament Winning - Friday Showdown",
        ]

        stored = await seed.get(Tournament, tournament.id)
        assert stored.result_announced_at == first_announced
        assert stored.results["first"]["participant_id"] == pr.id

    @pytest.mark.asyncio
    async def test_underfunded_correction_floors_at_zero(self, settlement, seed, session_factory):
        """Should take what is left and report the shortfall."""
        tournament = await seed.tournament(prizes=("100", "0", "0"))
        user = await seed.user()
        part = await seed.participant(tournament, user)
        await settlement.announce_result(tournament.id, [], Winners(first=part.id))

        # The winner already withdrew 70 of the 100
        async with session_factory() as session, session.begin():
            await LedgerService(session).apply_ledger_delta(
                user.id,
                SubBalance.WINNING,
                Decimal("-70"),
                WalletTransaction(tx_type=TransactionType.WITHDRAWAL, amount=Decimal("70")),
            )

        summary = await settlement.announce_result(tournament.id, [], Winners())

        [payout] = summary.payouts
        assert payout.delta == Decimal("-100")
        assert payout.applied_delta == Decimal("-30")
        assert payout.shortfall == Decimal("70")
        assert summary.total_debited == Decimal("30")

        stored = await seed.get(User, user.id)
        assert stored.winning_balance == Decimal("0")
        assert stored.wallet_balance == Decimal("0")
        assert (await seed.get(TournamentParticipant, part.id)).previous_earnings == Decimal("0")

    @pytest.mark.asyncio
    async def test_duo_prize_split_and_snapshot(self, settlement, seed):
        """Should split the prize across the slot and snapshot the team."""
        tournament = await seed.tournament(match_type=MatchType.DUO, prizes=("100", "40", "0"))
        users = [await seed.user(name=n) for n in ("Asha", "Ravi", "Meera", "Kabir")]
        for i, user in enumerate(users):
            await seed.participant(tournament, user, slot=1 if i < 2 else 2, order=i)

        summary = await settlement.announce_result(tournament.id, [], Winners(first="1", second="2"))

        assert summary.total_credited == Decimal("140")
        balances = [(await seed.get(User, u.id)).winning_balance for u in users]
        assert balances == [Decimal("50"), Decimal("50"), Decimal("20"), Decimal("20")]

        stored = await seed.get(Tournament, tournament.id)
        assert stored.results["first"] == {
            "slot_number": 1,
            "team_members": [
                {"name": "Asha", "game_id": "G-Asha"},
                {"name": "Ravi", "game_id": "G-Ravi"},
            ],
            "prize_per_member": "50.00",
        }
        assert stored.results["third"] is None

    @pytest.mark.asyncio
    async def test_partial_failure_resumes_on_rerun(self, settlement, seed):
        """Should pay the rest, then pay only the failed participant on retry."""
        tournament = await seed.tournament(per_kill_prize="10")
        user = await seed.user(name="Asha")
        ghost = SimpleNamespace(id="ghost-user", display_name="Ghost")
        ok = await seed.participant(tournament, user, order=0)
        missing = await seed.participant(tournament, ghost, order=1)
        kills = results((ok, 2), (missing, 3))

        summary = await settlement.announce_result(tournament.id, kills, Winners())

        assert summary.successful == 1
        assert summary.failed == 1
        failed = next(p for p in summary.payouts if not p.success)
        assert failed.participant_id == missing.id
        assert "not found" in failed.error_message
        with pytest.raises(PartialFailure) as exc_info:
            summary.raise_for_failures()
        assert exc_info.value.summary is summary

        # The failed participant's bookkeeping rolled back with its wallet update
        assert (await seed.get(TournamentParticipant, missing.id)).previous_earnings == Decimal("0")

        await seed.add(User(id="ghost-user", display_name="Ghost"))
        retry = await settlement.announce_result(tournament.id, kills, Winners())

        assert retry.failed == 0
        assert retry.total_credited == Decimal("30")
        assert (await seed.get(User, user.id)).winning_balance == Decimal("20")
        assert (await seed.get(User, "ghost-user")).winning_balance == Decimal("30")

    @pytest.mark.asyncio
    async def test_omitted_participants_keep_stored_kills(self, settlement, seed):
        tournament = await seed.tournament(per_kill_prize="5")
        user = await seed.user()
        part = await seed.participant(tournament, user)
        await settlement.announce_result(tournament.id, results((part, 4)), Winners())

        await settlement.announce_result(tournament.id, [], Winners())

        assert (await seed.get(User, user.id)).winning_balance == Decimal("20")


class TestAnnounceValidation:
    @pytest.mark.asyncio
    async def test_unknown_tournament(self, settlement):
        with pytest.raises(NotFoundError):
            await settlement.announce_result("missing", [], Winners())

    @pytest.mark.asyncio
    async def test_cancelled_tournament(self, settlement, seed):
        tournament = await seed.tournament(status=TournamentStatus.CANCELLED)
        with pytest.raises(InvalidStateError):
            await settlement.announce_result(tournament.id, [], Winners())

    @pytest.mark.asyncio
    async def test_unknown_participant(self, settlement, seed):
        tournament = await seed.tournament()
        with pytest.raises(ValidationError):
            await settlement.announce_result(
                tournament.id, [ParticipantResult("stranger", 1)], Winners()
            )

    @pytest.mark.asyncio
    async def test_negative_kills(self, settlement, seed):
        tournament = await seed.tournament()
        part = await seed.participant(tournament, await seed.user())
        with pytest.raises(ValidationError):
            await settlement.announce_result(tournament.id, results((part, -1)), Winners())

    @pytest.mark.asyncio
    async def test_same_winner_twice(self, settlement, seed):
        """Should reject one participant taking two placements."""
        tournament = await seed.tournament(prizes=("100", "50", "0"))
        user = await seed.user()
        part = await seed.participant(tournament, user)

        with pytest.raises(ValidationError):
            await settlement.announce_result(
                tournament.id, [], Winners(first=part.id, second=part.id)
            )

        assert (await seed.get(User, user.id)).winning_balance == Decimal("0")
        assert (await seed.get(Tournament, tournament.id)).status == TournamentStatus.LIVE

    @pytest.mark.asyncio
    async def test_empty_team_slot(self, settlement, seed):
        tournament = await seed.tournament(match_type=MatchType.SQUAD)
        await seed.participant(tournament, await seed.user(), slot=1)
        with pytest.raises(ValidationError):
            await settlement.announce_result(tournament.id, [], Winners(first="9"))


# =============================================================================
# Concurrency guards
# =============================================================================


class TestSettlementConcurrency:
    @pytest.mark.asyncio
    async def test_stale_snapshot_fails_instead_of_paying_twice(self, settlement, seed, monkeypatch):
        """A pass working from an outdated snapshot must not credit again."""
        tournament = await seed.tournament(per_kill_prize="10")
        user = await seed.user()
        part = await seed.participant(tournament, user)
        stale = await settlement._load_snapshot(tournament.id)

        await settlement.announce_result(tournament.id, results((part, 5)), Winners())

        async def load_stale(tournament_id):
            return stale

        monkeypatch.setattr(settlement, "_load_snapshot", load_stale)
        summary = await settlement.announce_result(tournament.id, results((part, 5)), Winners())

        assert summary.successful == 0
        assert summary.failed == 1
        assert "settled concurrently" in summary.payouts[0].error_message
        assert (await seed.get(User, user.id)).winning_balance == Decimal("50")
        assert len(await seed.transactions(user.id)) == 1
        assert (await seed.get(TournamentParticipant, part.id)).settlement_version == 1

    @pytest.mark.asyncio
    async def test_cancel_is_refused_once_a_participant_is_paid(
        self, settlement, seed, session_factory, monkeypatch
    ):
        tournament = await seed.tournament(entry_fee="20", per_kill_prize="10")
        users = [await seed.user(name=n) for n in ("Asha", "Ravi")]
        parts = [await seed.participant(tournament, u, order=i) for i, u in enumerate(users)]
        settle = settlement._settle_participant
        refusals = []

        async def settle_then_cancel(*args, **kwargs):
            token = await settle(*args, **kwargs)
            if not refusals:
                with pytest.raises(InvalidStateError) as exc_info:
                    await MatchCancellation(session_factory).cancel_match(tournament.id)
                refusals.append(exc_info.value)
            return token

        monkeypatch.setattr(settlement, "_settle_participant", settle_then_cancel)
        summary = await settlement.announce_result(
            tournament.id, results((parts[0], 5), (parts[1], 5)), Winners()
        )

        assert "settled results" in refusals[0].message
        assert summary.successful == 2
        for user in users:
            stored = await seed.get(User, user.id)
            assert stored.winning_balance == Decimal("50")
            assert stored.deposited_balance == Decimal("0")
        assert (await seed.get(Tournament, tournament.id)).status == TournamentStatus.FINISHED

    @pytest.mark.asyncio
    async def test_cancel_before_first_payout_stops_the_pass(
        self, settlement, seed, session_factory, monkeypatch
    ):
        """Should refund entry fees and pay no winnings."""
        tournament = await seed.tournament(entry_fee="20", per_kill_prize="10")
        users = [await seed.user(name=n) for n in ("Asha", "Ravi")]
        parts = [await seed.participant(tournament, u, order=i) for i, u in enumerate(users)]
        load = settlement._load_snapshot

        async def load_then_cancel(tournament_id):
            snapshot = await load(tournament_id)
            await MatchCancellation(session_factory).cancel_match(tournament_id)
            return snapshot

        monkeypatch.setattr(settlement, "_load_snapshot", load_then_cancel)
        summary = await settlement.announce_result(
            tournament.id,
            results((parts[0], 5), (parts[1], 3)),
            Winners(first=parts[0].id),
        )

        assert summary.successful == 0
        assert summary.failed == 2
        assert all("cancelled during settlement" in p.error_message for p in summary.payouts)
        with pytest.raises(PartialFailure):
            summary.raise_for_failures()

        for user in users:
            stored = await seed.get(User, user.id)
            assert stored.winning_balance == Decimal("0")
            assert stored.deposited_balance == Decimal("20")
        for part in parts:
            assert (await seed.get(TournamentParticipant, part.id)).previous_earnings == Decimal("0")

        stored = await seed.get(Tournament, tournament.id)
        assert stored.status == TournamentStatus.CANCELLED
        assert stored.results is None

    @pytest.mark.asyncio
    async def test_cancel_committed_mid_pass_fails_the_rest(
        self, settlement, seed, session_factory, monkeypatch
    ):
        """Participants reached after the tournament turns cancelled are not paid."""
        tournament = await seed.tournament(per_kill_prize="10")
        users = [await seed.user(name=n) for n in ("Asha", "Ravi")]
        parts = [await seed.participant(tournament, u, order=i) for i, u in enumerate(users)]
        settle = settlement._settle_participant

        async def settle_then_flip(*args, **kwargs):
            token = await settle(*args, **kwargs)
            async with session_factory() as session, session.begin():
                await session.execute(
                    update(Tournament)
                    .where(Tournament.id == tournament.id)
                    .values(status=TournamentStatus.CANCELLED)
                )
            return token

        monkeypatch.setattr(settlement, "_settle_participant", settle_then_flip)
        summary = await settlement.announce_result(
            tournament.id, results((parts[0], 5), (parts[1], 5)), Winners()
        )

        assert summary.successful == 1
        assert summary.failed == 1
        assert summary.payouts[1].participant_id == parts[1].id
        assert (await seed.get(User, users[0].id)).winning_balance == Decimal("50")
        assert (await seed.get(User, users[1].id)).winning_balance == Decimal("0")
        assert (await seed.get(Tournament, tournament.id)).results is None
