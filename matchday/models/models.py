"""
Database models for the matchday team engine.

Roster players and guest players live in separate tables with independent
integer id sequences. Every column that points at "a player" from elsewhere
is therefore stored as an (origin, id) pair, never a bare id.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, ForeignKey, Boolean, JSON, Index,
    UniqueConstraint, CheckConstraint, text
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()

# Values for *_origin columns
ORIGIN_ROSTER = "roster"
ORIGIN_GUEST = "guest"

# Match lifecycle
STATUS_DRAFT = "draft"
STATUS_FINALIZED = "finalized"

# Credit ledger reasons
REASON_INITIAL = "initial"
REASON_PODIUM = "podium"
REASON_SPEND = "spend"


class Team(Base):
    """Amateur team owning a roster and a fixture list."""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    game_format = Column(String(10), nullable=False, default="11v11")  # 4v4 .. 11v11
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    players = relationship("Player", back_populates="team", cascade="all, delete-orphan")
    matches = relationship("Match", back_populates="team", cascade="all, delete-orphan")


class Player(Base):
    """Season-long roster member."""
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    position = Column(String(20), nullable=False, default="Middenvelder")
    injured = Column(Boolean, nullable=False, default=False)

    # Cumulative stats
    goals = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    minutes_played = Column(Integer, nullable=False, default=0)
    bench_minutes = Column(Integer, nullable=False, default=0)
    appearances = Column(Integer, nullable=False, default=0)
    yellow_cards = Column(Integer, nullable=False, default=0)
    red_cards = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    team = relationship("Team", back_populates="players")


class GuestPlayer(Base):
    """One-off player that exists only for the match that created it."""
    __tablename__ = "guest_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    position = Column(String(20), nullable=False, default="Middenvelder")
    injured = Column(Boolean, nullable=False, default=False)

    goals = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    minutes_played = Column(Integer, nullable=False, default=0)
    bench_minutes = Column(Integer, nullable=False, default=0)
    appearances = Column(Integer, nullable=False, default=0)
    yellow_cards = Column(Integer, nullable=False, default=0)
    red_cards = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    match = relationship("Match", back_populates="guests")


class SubstitutionScheme(Base):
    """Substitution timing policy. An empty minute list means free-form."""
    __tablename__ = "substitution_schemes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    minutes = Column(JSON, nullable=False, default=list)  # e.g. [30, 60]


class Match(Base):
    """Fixture with its lifecycle status and voting payout flag."""
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    opponent = Column(String(255), nullable=False)
    home_away = Column(String(4), nullable=False, default="home")  # home, away
    game_format = Column(String(10), nullable=False, default="11v11")
    formation = Column(String(50), nullable=True)
    substitution_scheme_id = Column(Integer, ForeignKey("substitution_schemes.id"), nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_DRAFT, index=True)
    goals_for = Column(Integer, nullable=True)
    goals_against = Column(Integer, nullable=True)
    finalized_at = Column(DateTime, nullable=True)
    credits_awarded = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    team = relationship("Team", back_populates="matches")
    scheme = relationship("SubstitutionScheme")
    guests = relationship("GuestPlayer", back_populates="match", cascade="all, delete-orphan")
    absences = relationship("MatchAbsence", cascade="all, delete-orphan")
    lineup_entries = relationship("LineupEntry", cascade="all, delete-orphan")
    substitutions = relationship("Substitution", cascade="all, delete-orphan")
    votes = relationship("Vote", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("status IN ('draft', 'finalized')", name="ck_matches_status"),
    )

    @property
    def is_finalized(self) -> bool:
        return self.status == STATUS_FINALIZED


class MatchAbsence(Base):
    """Roster player reported absent for one match."""
    __tablename__ = "match_absences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    reason = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_match_absences_player"),
    )


class LineupEntry(Base):
    """Starting lineup cell: one formation slot held by one player."""
    __tablename__ = "lineups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # formation slot index
    player_origin = Column(String(10), nullable=False)
    player_id = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("match_id", "position", name="uq_lineups_slot"),
        UniqueConstraint("match_id", "player_origin", "player_id", name="uq_lineups_player"),
    )


class Substitution(Base):
    """One in/out pair within a substitution round, or an extra substitution."""
    __tablename__ = "substitutions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)  # 0 for extra substitutions
    minute = Column(Integer, nullable=False)
    player_out_origin = Column(String(10), nullable=False)
    player_out_id = Column(Integer, nullable=False)
    player_in_origin = Column(String(10), nullable=False)
    player_in_id = Column(Integer, nullable=False)
    is_extra = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_substitutions_round", "match_id", "round_number"),
    )


class Vote(Base):
    """Peer vote for the player of the match."""
    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True)
    voter_kind = Column(String(10), nullable=False)  # player, account
    voter_ref = Column(String(64), nullable=False)
    candidate_origin = Column(String(10), nullable=False)
    candidate_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("match_id", "voter_kind", "voter_ref", name="uq_votes_one_per_voter"),
    )


class CreditLedgerEntry(Base):
    """Append-only credit movement. A balance is the sum of a player's deltas."""
    __tablename__ = "credit_ledger"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    reason = Column(String(20), nullable=False)  # initial, podium, spend
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="SET NULL"), nullable=True)
    target_player_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        # A podium payout can land only once per player per match
        UniqueConstraint("team_id", "player_id", "reason", "match_id", name="uq_credit_ledger_payout"),
        # match_id is NULL on the starting grant, which the constraint above cannot see
        Index(
            "uq_credit_ledger_initial", "team_id", "player_id",
            unique=True,
            sqlite_where=text("reason = 'initial'"),
            postgresql_where=text("reason = 'initial'"),
        ),
        Index("ix_credit_ledger_balance", "team_id", "player_id"),
    )
