"""Module de matching et linkage."""

from reconcord.matching.linker import Linker
from reconcord.matching.schema import LinkResult, MatchCandidate, MatchResult, SuspectGroup

__all__ = ["Linker", "LinkResult", "MatchCandidate", "MatchResult", "SuspectGroup"]
