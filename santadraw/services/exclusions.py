from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Sequence, Set, Tuple, Union

from santadraw.services.errors import InvalidRuleError

ParticipantId = Union[int, str]
Pair = Tuple[ParticipantId, ParticipantId]


def canonical_pair(first: ParticipantId, second: ParticipantId) -> Pair:
    if first == second:
        raise InvalidRuleError("A participant cannot be excluded from themselves.")
    return (first, second) if first < second else (second, first)


@dataclass(frozen=True)
class ExclusionGraph:
    """Deduplicated, bidirectional set of forbidden giver/recipient pairs."""

    edges: FrozenSet[Pair]
    _neighbors: Dict[ParticipantId, FrozenSet[ParticipantId]] = field(
        default_factory=dict, repr=False, compare=False
    )

    @classmethod
    def build(cls, pairs: Iterable[Pair]) -> "ExclusionGraph":
        edges: Set[Pair] = set()
        neighbors: Dict[ParticipantId, Set[ParticipantId]] = defaultdict(set)
        for first, second in pairs or ():
            low, high = canonical_pair(first, second)
            edges.add((low, high))
            neighbors[low].add(high)
            neighbors[high].add(low)
        return cls(
            edges=frozenset(edges),
            _neighbors={node: frozenset(others) for node, others in neighbors.items()},
        )

    def __len__(self) -> int:
        return len(self.edges)

    def __contains__(self, pair: Pair) -> bool:
        return self.is_forbidden(*pair)

    def is_forbidden(self, giver: ParticipantId, recipient: ParticipantId) -> bool:
        return recipient in self._neighbors.get(giver, frozenset())

    def excluded_from(self, participant: ParticipantId) -> FrozenSet[ParticipantId]:
        return self._neighbors.get(participant, frozenset())

    def allowed_recipients(
        self,
        giver: ParticipantId,
        participants: Iterable[ParticipantId],
    ) -> Set[ParticipantId]:
        excluded = self.excluded_from(giver)
        return {p for p in participants if p != giver and p not in excluded}

    def allowed_map(self, participants: Sequence[ParticipantId]) -> Dict[ParticipantId, Set[ParticipantId]]:
        return {giver: self.allowed_recipients(giver, participants) for giver in participants}

    def dangling_edges(self, participants: Iterable[ParticipantId]) -> Set[Pair]:
        members = set(participants)
        return {edge for edge in self.edges if edge[0] not in members or edge[1] not in members}
