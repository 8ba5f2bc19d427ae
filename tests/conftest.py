"""Shared pytest fixtures for matchday engine tests."""
from datetime import date, datetime
from typing import Generator, List, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from matchday.models import (
    Base,
    Team,
    Player,
    GuestPlayer,
    Match,
    MatchAbsence,
    LineupEntry,
    SubstitutionScheme,
    Substitution,
    STATUS_FINALIZED,
)
from matchday.services.identity import PlayerKey

ROSTER_NAMES = [
    "Daan de Vries", "Sem Jansen", "Lucas Bakker", "Finn Visser", "Milan Smit",
    "Levi Meijer", "Noah de Boer", "Jesse Mulder", "Bram de Groot", "Thijs Bos",
    "Luuk Vos", "Ruben Peters", "Stijn Hendriks", "Gijs van Dijk",
]


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Fresh in-memory database per test.

    StaticPool keeps one connection so the TestClient thread sees the same
    database as the test body.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def team(db_session: Session) -> Team:
    team = Team(name="VV Oranje JO13-1", game_format="11v11")
    db_session.add(team)
    db_session.commit()
    return team


@pytest.fixture
def roster(db_session: Session, team: Team) -> List[Player]:
    """Fourteen roster players with ids 1..14."""
    players = [
        Player(team_id=team.id, name=name, position="Middenvelder")
        for name in ROSTER_NAMES
    ]
    db_session.add_all(players)
    db_session.commit()
    return players


@pytest.fixture
def make_match(db_session: Session, team: Team):
    """
    Factory for matches.

    Usage:
        match = make_match(scheme_minutes=[30, 60])
        match = make_match(scheme_minutes=[])   # free-form
    """
    def _make(
        scheme_minutes: Optional[List[int]] = None,
        game_format: str = "11v11",
        match_date: date = date(2026, 9, 12),
        opponent: str = "SV Blauw",
    ) -> Match:
        scheme = None
        if scheme_minutes is not None:
            scheme = SubstitutionScheme(name=f"scheme {scheme_minutes}", minutes=scheme_minutes)
            db_session.add(scheme)
            db_session.flush()

        match = Match(
            team_id=team.id,
            date=match_date,
            opponent=opponent,
            game_format=game_format,
            substitution_scheme_id=scheme.id if scheme else None,
        )
        db_session.add(match)
        db_session.commit()
        return match

    return _make


@pytest.fixture
def add_guest(db_session: Session):
    def _add(match: Match, name: str, position: str = "Aanvaller") -> GuestPlayer:
        guest = GuestPlayer(match_id=match.id, name=name, position=position)
        db_session.add(guest)
        db_session.commit()
        return guest

    return _add


@pytest.fixture
def set_lineup(db_session: Session):
    """Write lineup rows directly: slot i holds keys[i]."""
    def _set(match: Match, keys: List[PlayerKey]) -> None:
        for slot, key in enumerate(keys):
            db_session.add(LineupEntry(
                match_id=match.id,
                position=slot,
                player_origin=key.origin.value,
                player_id=key.id,
            ))
        db_session.commit()

    return _set


@pytest.fixture
def add_substitution(db_session: Session):
    """Write one substitution row directly, bypassing validation."""
    def _add(
        match: Match,
        minute: int,
        player_out: PlayerKey,
        player_in: PlayerKey,
        round_number: int = 1,
        is_extra: bool = False,
    ) -> Substitution:
        row = Substitution(
            match_id=match.id,
            round_number=0 if is_extra else round_number,
            minute=minute,
            player_out_origin=player_out.origin.value,
            player_out_id=player_out.id,
            player_in_origin=player_in.origin.value,
            player_in_id=player_in.id,
            is_extra=is_extra,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _add


@pytest.fixture
def mark_absent(db_session: Session):
    def _mark(match: Match, player: Player) -> None:
        db_session.add(MatchAbsence(match_id=match.id, player_id=player.id))
        db_session.commit()

    return _mark


@pytest.fixture
def finalize_directly(db_session: Session):
    """Flip a match to finalized without touching stats."""
    def _finalize(match: Match, finalized_at: datetime) -> Match:
        match.status = STATUS_FINALIZED
        match.finalized_at = finalized_at
        db_session.commit()
        return match

    return _finalize


def roster_keys(players: List[Player]) -> List[PlayerKey]:
    return [PlayerKey.roster(p.id) for p in players]


@pytest.fixture
def keys():
    return roster_keys


@pytest.fixture
def test_client(db_session: Session):
    """
    FastAPI TestClient wired to the test database.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/v1/matches/1")
    """
    from fastapi.testclient import TestClient
    from matchday.main import app
    from matchday.core.database import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()
