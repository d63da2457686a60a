# classplay/services/mafia_service.py
import logging
import random
from collections import Counter
from typing import Any, Dict, Iterable, Optional, Tuple

from classplay.core.config import Settings, settings as default_settings
from classplay.core.errors import (
    InsufficientPlayersError,
    InvalidStatusTransitionError,
    PlayerNotInSessionError,
    ValidationError,
    store_operation,
)
from classplay.models.enums import GameType, MafiaRole, MoveType, SessionStatus, VotePhase
from classplay.models.game import GameSession, Move, MoveDraft, PhaseChange, Player, VoteTally
from classplay.services.move_log import MoveLog
from classplay.services.records import load_session, session_path
from classplay.store.base import RealtimeStore

logger = logging.getLogger("classplay.services.mafia_service")  # Logger for this module

# Night action each special role may take.
ROLE_ACTIONS: Dict[MafiaRole, str] = {
    MafiaRole.MAFIA: "kill",
    MafiaRole.DOCTOR: "heal",
    MafiaRole.DETECTIVE: "investigate",
}


def role_sequence(player_count: int, players_per_mafioso: int = 4) -> list[MafiaRole]:
    """Roles in dealing order: mafia first, then doctor and detective, civilians for the rest."""
    mafia_count = max(1, player_count // players_per_mafioso)
    roles = [MafiaRole.MAFIA] * mafia_count + [MafiaRole.DOCTOR, MafiaRole.DETECTIVE]
    roles += [MafiaRole.CIVILIAN] * max(player_count - len(roles), 0)
    return roles[:player_count]


def phase_state(moves: Iterable[Move]) -> Tuple[VotePhase, int]:
    """Phase and round left by the latest phase change. A game opens on the night of round 1."""
    phase, round_number = VotePhase.NIGHT, 1
    for move in moves:
        if move.type is MoveType.PHASE_CHANGE:
            phase = VotePhase(move.payload.get("phase", phase.value))
            round_number = int(move.payload.get("round", round_number))
    return phase, round_number


def day_votes(moves: Iterable[Move]) -> Dict[int, int]:
    """Latest day vote of each voter since the last phase change, voter number -> target number."""
    votes: Dict[int, int] = {}
    for move in moves:
        if move.type is MoveType.PHASE_CHANGE:
            votes = {}
        elif (
            move.type is MoveType.VOTE
            and move.payload.get("voteType") == VotePhase.DAY.value
            and move.player_number is not None
        ):
            votes[move.player_number] = int(move.payload["targetNumber"])
    return votes


def vote_leader(votes: Dict[int, int]) -> Tuple[Optional[int], int]:
    """Most voted player and their count; on a tie the lowest player number leads."""
    counts = Counter(votes.values())
    leader, top = None, 0
    for number in sorted(counts):
        if counts[number] > top:
            leader, top = number, counts[number]
    return leader, top


class MafiaService:
    def __init__(
        self,
        store: RealtimeStore,
        move_log: Optional[MoveLog] = None,
        rng: Optional[random.Random] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.move_log = move_log or MoveLog(store, self.settings)
        self.rng = rng or random.Random()

    # --- Roles ---

    def deal_roles(self, session: GameSession) -> Tuple[Dict[str, MafiaRole], Dict[str, Any]]:
        """
        Deals a role to every numbered player of a waiting session.

        Returns the assignment and the session-relative update fields that store it,
        so the caller can commit them together with the status change.
        """
        if session.game_type is not GameType.MAFIA:
            raise ValidationError("Roles only exist in mafia sessions", session_id=session.id)
        if session.status is not SessionStatus.WAITING:
            raise InvalidStatusTransitionError(
                f"Session is '{session.status.value}', roles are only dealt before the game starts",
                session_id=session.id,
            )
        player_ids = sorted(pid for pid, player in session.players.items() if player.has_number)
        minimum = self.settings.MAFIA_MIN_PLAYERS
        if len(player_ids) < minimum:
            raise InsufficientPlayersError(session.id, len(player_ids), minimum, "A mafia game")

        self.rng.shuffle(player_ids)
        roles = role_sequence(len(player_ids), self.settings.MAFIA_PLAYERS_PER_MAFIOSO)
        assignment = dict(zip(player_ids, roles))

        updates: Dict[str, Any] = {}
        for player_id, role in assignment.items():
            updates[f"players/{player_id}/role"] = role.value
            updates[f"players/{player_id}/isAlive"] = True
        return assignment, updates

    async def assign_roles(self, session_id: str) -> Dict[str, MafiaRole]:
        """Deals roles ahead of the start; once the game runs, roles are fixed."""
        session = await load_session(self.store, session_id, "assign_roles.read")
        assignment, updates = self.deal_roles(session)
        with store_operation("assign_roles.update_players"):
            await self.store.update(session_path(session_id), updates)
        await self.announce_roles(session_id, assignment)
        return assignment

    async def announce_roles(self, session_id: str, assignment: Dict[str, MafiaRole]) -> str:
        mafia_count = sum(1 for role in assignment.values() if role is MafiaRole.MAFIA)
        logger.info(f"S:{session_id} - Roles assigned to {len(assignment)} players ({mafia_count} mafia)")
        return await self.move_log.append_move(
            session_id,
            self.move_log.system_move("Roles have been assigned. The game begins!", {"mafiaCount": mafia_count}),
        )

    async def submit_vote(self, session_id: str, player_id: str, target_number: int, phase: str) -> str:
        session = await load_session(self.store, session_id, "submit_vote.read")
        voter = self._alive_player(session, player_id)
        try:
            phase = VotePhase(phase)
        except ValueError:
            raise ValidationError(f"Unknown vote phase '{phase}'", session_id=session_id) from None
        if phase is VotePhase.NIGHT and voter.role not in ROLE_ACTIONS:
            raise ValidationError("Civilians sleep through the night", session_id=session_id)
        target = self._alive_target(session, target_number)
        if phase is VotePhase.DAY and target.id == voter.id:
            raise ValidationError("Players cannot vote against themselves", session_id=session_id)

        draft = MoveDraft(
            player_id=voter.id,
            player_name=voter.name,
            player_number=voter.number,
            type=MoveType.VOTE,
            description=f"Player {voter.number} votes against player {target.number}",
            payload={
                "targetNumber": target.number,
                "voteType": phase.value,
                "role": voter.role.value if voter.role else None,
            },
        )
        return await self.move_log.append_move(session_id, draft)

    async def submit_role_action(self, session_id: str, player_id: str, action: str, target_number: int) -> str:
        session = await load_session(self.store, session_id, "submit_role_action.read")
        actor = self._alive_player(session, player_id)
        expected = ROLE_ACTIONS.get(actor.role)
        if expected is None or action != expected:
            raise ValidationError(
                f"A {actor.role.value if actor.role else 'player without a role'} cannot '{action}'",
                session_id=session_id,
            )
        target = self._alive_target(session, target_number)
        if actor.role is MafiaRole.MAFIA and target.role is MafiaRole.MAFIA:
            raise ValidationError("The mafia cannot target its own members", session_id=session_id)
        if actor.role is MafiaRole.DETECTIVE and target.id == actor.id:
            raise ValidationError("The detective cannot investigate themselves", session_id=session_id)

        draft = MoveDraft(
            player_id=actor.id,
            player_name=actor.name,
            player_number=actor.number,
            type=MoveType.ROLE_ACTION,
            description=f"Player {actor.number} acted during the night",
            payload={"action": action, "targetNumber": target.number, "role": actor.role.value},
        )
        return await self.move_log.append_move(session_id, draft)

    # --- Moderation ---

    async def eliminate_player(self, session_id: str, player_number: int) -> Player:
        session = await load_session(self.store, session_id, "eliminate_player.read")
        self._require_active(session)
        victim = self._alive_target(session, player_number)
        await self._mark_dead(session_id, victim)
        await self.move_log.append_move(
            session_id,
            self.move_log.system_move(
                f"Player {victim.number} has been eliminated",
                {"eliminatedPlayer": victim.number},
            ),
        )
        return victim.model_copy(update={"is_alive": False})

    async def change_phase(self, session_id: str, phase: str) -> PhaseChange:
        """Night to day opens a new round; day to night keeps it."""
        session = await load_session(self.store, session_id, "change_phase.read")
        self._require_mafia_game(session)
        try:
            phase = VotePhase(phase)
        except ValueError:
            raise ValidationError(f"Unknown phase '{phase}'", session_id=session_id) from None
        current, round_number = phase_state(session.ordered_moves())
        if phase is current:
            raise ValidationError(f"It is already {phase.value}", session_id=session_id)
        if phase is VotePhase.DAY:
            round_number += 1
        return await self._append_phase_change(session_id, phase, round_number)

    async def tally_day_votes(self, session_id: str) -> VoteTally:
        """
        Counts the day votes cast since the day began and closes the day.

        The most voted alive player is eliminated; without any vote nobody is.
        Either way the outcome is logged and the game moves on to the night.
        """
        session = await load_session(self.store, session_id, "tally_day_votes.read")
        self._require_mafia_game(session)
        moves = session.ordered_moves()
        phase, round_number = phase_state(moves)
        if phase is not VotePhase.DAY:
            raise ValidationError("Day votes are only counted during the day", session_id=session_id)

        alive = {p.number for p in session.players.values() if p.has_number and p.is_alive}
        votes = {voter: target for voter, target in day_votes(moves).items() if voter in alive and target in alive}
        leader, vote_count = vote_leader(votes)
        payload_votes = {str(voter): target for voter, target in votes.items()}

        if leader is None:
            await self.move_log.append_move(
                session_id,
                self.move_log.system_move(
                    "Nobody was voted out today",
                    {"votes": payload_votes},
                    MoveType.NO_ELIMINATION,
                ),
            )
        else:
            await self._mark_dead(session_id, session.player_by_number(leader))
            await self.move_log.append_move(
                session_id,
                self.move_log.system_move(
                    f"Player {leader} was voted out ({vote_count} votes)",
                    {"eliminatedPlayer": leader, "voteCount": vote_count, "votes": payload_votes},
                    MoveType.ELIMINATION,
                ),
            )
        logger.info(f"S:{session_id} - Day {round_number} tallied: {len(votes)} votes, eliminated #{leader}")

        await self._append_phase_change(session_id, VotePhase.NIGHT, round_number)
        return VoteTally(round=round_number, votes=votes, eliminated_player=leader, vote_count=vote_count)

    async def _append_phase_change(self, session_id: str, phase: VotePhase, round_number: int) -> PhaseChange:
        if phase is VotePhase.DAY:
            description = f"Round {round_number}, day. Discuss and vote."
        else:
            description = f"Round {round_number}, night. The mafia chooses a victim."
        await self.move_log.append_move(
            session_id,
            self.move_log.system_move(
                description,
                {"phase": phase.value, "round": round_number},
                MoveType.PHASE_CHANGE,
            ),
        )
        logger.info(f"S:{session_id} - Phase changed to {phase.value} (round {round_number})")
        return PhaseChange(phase=phase, round=round_number)

    async def _mark_dead(self, session_id: str, victim: Player) -> None:
        with store_operation("eliminate_player.update_player"):
            await self.store.update(session_path(session_id), {f"players/{victim.id}/isAlive": False})
        logger.info(f"S:{session_id} - Player #{victim.number} eliminated")

    def _require_active(self, session: GameSession) -> None:
        if session.status is not SessionStatus.ACTIVE:
            raise InvalidStatusTransitionError(
                f"Session is '{session.status.value}', not active", session_id=session.id
            )

    def _require_mafia_game(self, session: GameSession) -> None:
        if session.game_type is not GameType.MAFIA:
            raise ValidationError("Phases only exist in mafia sessions", session_id=session.id)
        self._require_active(session)

    def _alive_player(self, session: GameSession, player_id: str) -> Player:
        self._require_active(session)
        player = session.players.get(player_id)
        if player is None or not player.has_number:
            raise PlayerNotInSessionError(f"Player '{player_id}' is not playing in this session", session_id=session.id)
        if not player.is_alive:
            raise ValidationError("Eliminated players cannot act", session_id=session.id)
        return player

    def _alive_target(self, session: GameSession, number: int) -> Player:
        target = session.player_by_number(number)
        if target is None or not target.is_alive:
            raise ValidationError(f"Player #{number} is not an alive player of this session", session_id=session.id)
        return target
