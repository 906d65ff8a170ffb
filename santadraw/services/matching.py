from __future__ import annotations

import random
from collections import deque
from typing import Dict, Hashable, Iterable, Mapping, Optional, Sequence

_INF = float("inf")


def maximum_matching(
    givers: Sequence[Hashable],
    allowed: Mapping[Hashable, Iterable[Hashable]],
) -> Dict[Hashable, Hashable]:
    """Hopcroft-Karp maximum matching of givers onto recipients.

    ``allowed`` maps each giver to the recipients it may be matched with. The
    result maps every matched giver to its recipient; its size is the maximum
    matching size.
    """
    adjacency = {giver: list(allowed.get(giver, ())) for giver in givers}
    match_giver: Dict[Hashable, Optional[Hashable]] = {giver: None for giver in givers}
    match_recipient: Dict[Hashable, Hashable] = {}
    layer: Dict[Hashable, float] = {}

    def build_layers() -> bool:
        queue = deque()
        for giver in givers:
            if match_giver[giver] is None:
                layer[giver] = 0
                queue.append(giver)
            else:
                layer[giver] = _INF
        reachable_free = False
        while queue:
            giver = queue.popleft()
            for recipient in adjacency[giver]:
                partner = match_recipient.get(recipient)
                if partner is None:
                    reachable_free = True
                elif layer[partner] == _INF:
                    layer[partner] = layer[giver] + 1
                    queue.append(partner)
        return reachable_free

    def augment(giver) -> bool:
        for recipient in adjacency[giver]:
            partner = match_recipient.get(recipient)
            if partner is None or (layer[partner] == layer[giver] + 1 and augment(partner)):
                match_giver[giver] = recipient
                match_recipient[recipient] = giver
                return True
        layer[giver] = _INF
        return False

    while build_layers():
        for giver in givers:
            if match_giver[giver] is None:
                augment(giver)

    return {giver: recipient for giver, recipient in match_giver.items() if recipient is not None}


def random_perfect_matching(
    givers: Sequence[Hashable],
    allowed: Mapping[Hashable, Iterable[Hashable]],
    rng: random.Random,
) -> Optional[Dict[Hashable, Hashable]]:
    """Random permutation repaired into a perfect matching on the allowed edges.

    A uniformly shuffled permutation is kept wherever it already uses an allowed
    edge; the remaining givers are matched through augmenting paths explored in
    random order. Returns None when no perfect matching exists.
    """
    recipients = list(givers)
    rng.shuffle(recipients)

    match_giver: Dict[Hashable, Hashable] = {}
    match_recipient: Dict[Hashable, Hashable] = {}
    for giver, recipient in zip(givers, recipients):
        if recipient in allowed[giver]:
            match_giver[giver] = recipient
            match_recipient[recipient] = giver

    def augment(giver, visited: set) -> bool:
        candidates = list(allowed[giver])
        rng.shuffle(candidates)
        for recipient in candidates:
            if recipient in visited:
                continue
            visited.add(recipient)
            partner = match_recipient.get(recipient)
            if partner is None or augment(partner, visited):
                match_giver[giver] = recipient
                match_recipient[recipient] = giver
                return True
        return False

    unmatched = [giver for giver in givers if giver not in match_giver]
    rng.shuffle(unmatched)
    for giver in unmatched:
        if not augment(giver, set()):
            return None
    return match_giver
