from dojo_brackets.models.bracket import Bracket, BracketStatus
from dojo_brackets.models.match import Match, MatchStatus
from dojo_brackets.models.registration import ApprovalStatus, Registration
from dojo_brackets.models.tournament import Tournament, TournamentStatus

__all__ = [
    "Tournament",
    "TournamentStatus",
    "Registration",
    "ApprovalStatus",
    "Bracket",
    "BracketStatus",
    "Match",
    "MatchStatus",
]
