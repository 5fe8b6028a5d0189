"""Initial settlement schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def _money(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, MONEY, nullable=True)
    return sa.Column(name, MONEY, nullable=False, server_default="0")


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        _id(),
        sa.Column("display_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=False, server_default=""),
        sa.Column("fcm_token", sa.String(500), nullable=True),
        _money("wallet_balance"),
        _money("deposited_balance"),
        _money("winning_balance"),
        _money("bonus_balance"),
        _money("total_winnings"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    # Wallet transactions table
    op.create_table(
        "wallet_transactions",
        _id(),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("user_name", sa.String(100), nullable=True),
        sa.Column(
            "tx_type",
            sa.Enum(
                "DEPOSIT",
                "WITHDRAWAL",
                "ENTRY_FEE",
                "WINNING",
                "WINNING_ADJUSTMENT",
                "BONUS",
                "MANUAL_CREDIT",
                "MANUAL_DEBIT",
                "REFUND",
                name="transactiontype",
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("PENDING", "COMPLETED", "REJECTED", name="transactionstatus"),
            nullable=False,
        ),
        _money("amount"),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("reference_id", sa.String(36), nullable=True),
        sa.Column(
            "wallet_type",
            sa.Enum("DEPOSITED", "WINNING", "BONUS", name="subbalance"),
            nullable=True,
        ),
        _money("balance_after", nullable=True),
        _money("shortfall", nullable=True),
        sa.Column("kills", sa.Integer(), nullable=True),
        _money("previous_earnings", nullable=True),
        _money("new_earnings", nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("integrity_hash", sa.String(64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_wallet_transactions_user_id", "wallet_transactions", ["user_id"])
    op.create_index("ix_wallet_transactions_tx_type", "wallet_transactions", ["tx_type"])
    op.create_index("ix_wallet_transactions_status", "wallet_transactions", ["status"])
    op.create_index("ix_wallet_transactions_reference_id", "wallet_transactions", ["reference_id"])
    op.create_index("ix_wallet_transactions_created_at", "wallet_transactions", ["created_at"])

    # Deposit / withdrawal requests
    for table, status_enum, extra in (
        (
            "deposit_requests",
            sa.Enum("PENDING", "APPROVED", "REJECTED", name="depositstatus"),
            [sa.Column("utr", sa.String(64), nullable=True)],
        ),
        (
            "withdrawal_requests",
            sa.Enum("PENDING", "COMPLETED", "REJECTED", name="withdrawalstatus"),
            [
                sa.Column("payment_method", sa.String(50), nullable=True),
                sa.Column("payment_details", sa.String(255), nullable=True),
            ],
        ),
    ):
        op.create_table(
            table,
            _id(),
            sa.Column(
                "user_id",
                sa.String(36),
                sa.ForeignKey("users.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("user_name", sa.String(100), nullable=True),
            _money("amount"),
            sa.Column(
                "transaction_id",
                sa.String(36),
                sa.ForeignKey("wallet_transactions.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("processed_by", sa.String(64), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("status", status_enum, nullable=False),
            *extra,
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])
        op.create_index(f"ix_{table}_status", table, ["status"])
        op.create_index(f"ix_{table}_created_at", table, ["created_at"])

    # Tournaments
    op.create_table(
        "tournaments",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "status",
            sa.Enum("UPCOMING", "LIVE", "FINISHED", "CANCELLED", name="tournamentstatus"),
            nullable=False,
        ),
        sa.Column("match_type", sa.Enum("SOLO", "DUO", "SQUAD", name="matchtype"), nullable=False),
        _money("entry_fee"),
        _money("prize_pool"),
        _money("per_kill_prize"),
        _money("prize1"),
        _money("prize2"),
        _money("prize3"),
        sa.Column("results", sa.JSON(), nullable=True),
        sa.Column("result_announced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tournaments_status", "tournaments", ["status"])
    op.create_index("ix_tournaments_created_at", "tournaments", ["created_at"])

    op.create_table(
        "tournament_participants",
        _id(),
        sa.Column(
            "tournament_id",
            sa.String(36),
            sa.ForeignKey("tournaments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("joined_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_name", sa.String(100), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("game_id", sa.String(64), nullable=True),
        sa.Column("game_name", sa.String(100), nullable=True),
        sa.Column("slot_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("kills", sa.Integer(), nullable=False, server_default="0"),
        _money("previous_earnings"),
        sa.Column("settlement_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_tournament_participants_tournament_id", "tournament_participants", ["tournament_id"]
    )
    op.create_index("ix_tournament_participants_user_id", "tournament_participants", ["user_id"])
    op.create_index(
        "ix_tournament_participants_created_at", "tournament_participants", ["created_at"]
    )

    # Lotteries
    op.create_table(
        "lotteries",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column(
            "status",
            sa.Enum("UPCOMING", "ONGOING", "FINISHED", name="lotterystatus"),
            nullable=False,
        ),
        _money("prize_amount"),
        _money("entry_fee"),
        sa.Column("winner_id", sa.String(36), nullable=True),
        sa.Column("winner_name", sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lotteries_status", "lotteries", ["status"])
    op.create_index("ix_lotteries_created_at", "lotteries", ["created_at"])

    op.create_table(
        "lottery_participants",
        _id(),
        sa.Column(
            "lottery_id",
            sa.String(36),
            sa.ForeignKey("lotteries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("user_name", sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lottery_id", "user_id"),
    )
    op.create_index("ix_lottery_participants_lottery_id", "lottery_participants", ["lottery_id"])
    op.create_index("ix_lottery_participants_created_at", "lottery_participants", ["created_at"])


def downgrade() -> None:
    op.drop_table("lottery_participants")
    op.drop_table("lotteries")
    op.drop_table("tournament_participants")
    op.drop_table("tournaments")
    op.drop_table("withdrawal_requests")
    op.drop_table("deposit_requests")
    op.drop_table("wallet_transactions")
    op.drop_table("users")

    for enum_name in (
        "lotterystatus",
        "matchtype",
        "tournamentstatus",
        "withdrawalstatus",
        "depositstatus",
        "subbalance",
        "transactionstatus",
        "transactiontype",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
