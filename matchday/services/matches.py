"""
Fixture management: creating, editing and deleting matches.

Only draft matches can be edited or deleted. Deleting a match removes its
lineup, substitutions, absences, guests and votes with it.
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from matchday.core.errors import MatchLockedError, NotFoundError, PersistenceError, ValidationError
from matchday.core.logging import match_context
from matchday.models import Match, Substitution, Team, STATUS_DRAFT
from matchday.repositories import MatchRepository, SchemeRepository, SubstitutionRepository
from matchday.services.formations import GAME_FORMATS, FORMATIONS, normalize_formation

logger = logging.getLogger(__name__)

HOME_AWAY = ("home", "away")

# Fields a draft match accepts through `update_match`
_UPDATABLE = {"match_date", "opponent", "home_away", "formation", "substitution_scheme_id"}


class MatchService:
    """Create, list, update and delete fixtures of a team."""

    def __init__(self, db: Session):
        self.db = db
        self.matches = MatchRepository(db)
        self.schemes = SchemeRepository(db)
        self.substitutions = SubstitutionRepository(db)

    async def list_matches(self, team_id: int) -> List[Match]:
        self._require_team(team_id)
        return self.matches.find_by_team(team_id)

    async def create_match(
        self,
        team_id: int,
        match_date: date,
        opponent: str,
        home_away: str = "home",
        game_format: Optional[str] = None,
        formation: Optional[str] = None,
        substitution_scheme_id: Optional[int] = None,
    ) -> Match:
        """
        Create a draft match.

        The game format defaults to the team's format and a missing formation
        to the format's default.

        Raises:
            NotFoundError: unknown team or substitution scheme
            ValidationError: empty opponent, bad venue or game format
            PersistenceError: store failure
        """
        team = self._require_team(team_id)
        game_format = game_format or team.game_format

        errors = self._check_fields(
            game_format, match_date=match_date, opponent=opponent, home_away=home_away, formation=formation
        )
        if game_format not in GAME_FORMATS:
            errors.append(f"Unknown game format {game_format!r}")
        if errors:
            raise ValidationError(errors)
        if substitution_scheme_id is not None:
            self._require_scheme(substitution_scheme_id)

        try:
            match = self.matches.create(
                team_id=team_id,
                date=match_date,
                opponent=opponent.strip(),
                home_away=home_away,
                game_format=game_format,
                formation=normalize_formation(formation, game_format),
                substitution_scheme_id=substitution_scheme_id,
                status=STATUS_DRAFT,
            )
            self.matches.save()
        except SQLAlchemyError as e:
            self.matches.rollback()
            logger.error(f"Error creating match: {e}", exc_info=True)
            raise PersistenceError("create match", e) from e

        self.matches.refresh(match)
        logger.info(f"Created match {match.id} against {match.opponent} on {match.date}")
        return match

    async def update_match(self, match_id: int, **changes) -> Match:
        """
        Change the fixture details of a draft match.

        Accepted keys: match_date, opponent, home_away, formation,
        substitution_scheme_id. The scheme can only change while no
        substitution round is stored, since rounds are laid out by it.

        Raises:
            NotFoundError: unknown match or scheme
            MatchLockedError: match already finalized
            ValidationError: unknown field or bad value
            PersistenceError: store failure
        """
        match = self._editable(match_id, "update match")

        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValidationError([f"Field {name!r} cannot be changed" for name in sorted(unknown)])

        errors = self._check_fields(game_format=match.game_format, **{
            k: v for k, v in changes.items() if k in ("match_date", "opponent", "home_away", "formation")
        })
        if "substitution_scheme_id" in changes and changes["substitution_scheme_id"] != match.substitution_scheme_id:
            if self.substitutions.count(Substitution.match_id == match_id):
                errors.append("The substitution scheme cannot change once substitutions are recorded")
            elif changes["substitution_scheme_id"] is not None:
                self._require_scheme(changes["substitution_scheme_id"])
        if errors:
            raise ValidationError(errors)

        with match_context(match_id):
            try:
                if "match_date" in changes:
                    match.date = changes["match_date"]
                if "opponent" in changes:
                    match.opponent = changes["opponent"].strip()
                if "home_away" in changes:
                    match.home_away = changes["home_away"]
                if "formation" in changes:
                    match.formation = normalize_formation(changes["formation"], match.game_format)
                if "substitution_scheme_id" in changes:
                    match.substitution_scheme_id = changes["substitution_scheme_id"]
                match.updated_at = datetime.utcnow()
                self.matches.save()
            except SQLAlchemyError as e:
                self.matches.rollback()
                logger.error(f"Error updating match: {e}", exc_info=True)
                raise PersistenceError("update match", e) from e

            self.matches.refresh(match)
            logger.info(f"Updated match fields: {', '.join(sorted(changes)) or 'none'}")
        return match

    async def delete_match(self, match_id: int) -> None:
        """
        Delete a draft match and everything scoped to it.

        Raises:
            NotFoundError: unknown match
            MatchLockedError: match already finalized
            PersistenceError: store failure
        """
        match = self._editable(match_id, "delete match")

        try:
            self.db.delete(match)
            self.matches.save()
        except SQLAlchemyError as e:
            self.matches.rollback()
            logger.error(f"Error deleting match {match_id}: {e}", exc_info=True)
            raise PersistenceError("delete match", e) from e

        logger.info(f"Deleted match {match_id}")

    def _check_fields(
        self, game_format: str, match_date=..., opponent=..., home_away=..., formation=None
    ) -> List[str]:
        # `...` marks a field the caller is not setting
        errors = []
        if match_date is None:
            errors.append("A match needs a date")
        if opponent is not ... and not (opponent or "").strip():
            errors.append("A match needs an opponent")
        if home_away is not ... and home_away not in HOME_AWAY:
            errors.append(f"Venue must be one of {', '.join(HOME_AWAY)}")
        if formation is not None and game_format in FORMATIONS and formation not in FORMATIONS[game_format]:
            errors.append(f"Formation {formation!r} is not played in {game_format}")
        return errors

    def _require_team(self, team_id: int) -> Team:
        team = self.db.get(Team, team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    def _require_scheme(self, scheme_id: int) -> None:
        if self.schemes.find_by_id(scheme_id) is None:
            raise NotFoundError("Substitution scheme", scheme_id)

    def _editable(self, match_id: int, action: str) -> Match:
        match = self.matches.find_by_id(match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        if match.is_finalized:
            raise MatchLockedError(match_id, action)
        return match
