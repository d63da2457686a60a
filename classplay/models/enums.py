from enum import Enum

class GameType(str, Enum):
    TRUTH_OR_DARE = "truth_or_dare" # the question game: asker/target turns
    QUIZ = "quiz"
    MAFIA = "mafia"

    @property
    def display_name(self) -> str:
        return {
            GameType.TRUTH_OR_DARE: "Truth or Dare",
            GameType.QUIZ: "Quiz",
            GameType.MAFIA: "Mafia",
        }[self]

    @property
    def has_turns(self) -> bool:
        return self is GameType.TRUTH_OR_DARE

class SessionStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    FINISHED = "finished"

    def can_transition_to(self, other: "SessionStatus") -> bool:
        """Statuses only ever move forward: waiting -> active -> finished."""
        order = list(SessionStatus)
        return order.index(other) > order.index(self)

class SessionEndReason(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class MoveType(str, Enum):
    ANSWER = "answer"
    CHOICE = "choice"
    QUESTION = "question"
    VOTE = "vote"
    ROLE_ACTION = "role_action"
    SYSTEM = "system"
    # Moderator outcomes, appended by the server rather than a player.
    PHASE_CHANGE = "phase_change"
    ELIMINATION = "elimination"
    NO_ELIMINATION = "no_elimination"
    QUESTION_START = "question_start"
    QUESTION_END = "question_end"
    QUIZ_FINISHED = "quiz_finished"

class TurnChoice(str, Enum):
    TRUTH = "truth"
    DARE = "dare"

class MafiaRole(str, Enum):
    MAFIA = "mafia"
    DOCTOR = "doctor"
    DETECTIVE = "detective"
    CIVILIAN = "civilian"

class VotePhase(str, Enum):
    DAY = "day"
    NIGHT = "night"
