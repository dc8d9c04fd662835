"""
Checkout suggestions for X01 double-out finishes.

Labels follow Dart.label: S20 / D20 / T20, BULL (outer, 25) and DBULL
(inner, 50). The last dart of every suggestion is a double or DBULL.
"""
from functools import lru_cache
from typing import Dict, List, Set, Tuple

SINGLES = {f"S{i}": i for i in range(1, 21)}
DOUBLES = {f"D{i}": i * 2 for i in range(1, 21)}
TRIPLES = {f"T{i}": i * 3 for i in range(1, 21)}
BULLS = {"BULL": 25, "DBULL": 50}

ALL_THROWS: Dict[str, int] = {**SINGLES, **DOUBLES, **TRIPLES, **BULLS}
FINISH_THROWS: Dict[str, int] = {**DOUBLES, "DBULL": 50}

MAX_CHECKOUT = 170
MAX_SUGGESTIONS = 20

# Standard routes players are taught; listed ahead of the generated ones
PREFERRED_ROUTES: Dict[int, List[str]] = {
    170: ["T20 T20 DBULL"], 167: ["T20 T19 DBULL"], 164: ["T20 T18 DBULL"],
    161: ["T20 T17 DBULL"], 160: ["T20 T20 D20"], 158: ["T20 T20 D19"],
    157: ["T20 T19 D20"], 156: ["T20 T20 D18"], 155: ["T20 T19 D19"],
    154: ["T20 T18 D20"], 153: ["T20 T19 D18"], 152: ["T20 T20 D16"],
    151: ["T20 T17 D20"], 150: ["T20 T18 D18"], 149: ["T20 T19 D16"],
    148: ["T20 T16 D20"], 147: ["T20 T17 D18"], 146: ["T20 T18 D16"],
    145: ["T20 T15 D20"], 144: ["T20 T20 D12"], 141: ["T20 T19 D12"],
    140: ["T20 T20 D10"], 137: ["T20 T19 D10"], 136: ["T20 T20 D8"],
    132: ["DBULL T14 D20", "T20 T12 D8"], 130: ["T20 T20 D5", "T20 T18 D8"],
    129: ["T19 T16 D12"], 128: ["T18 T14 D16"], 127: ["T20 T17 D8"],
    126: ["T19 T19 D6"], 121: ["T20 T15 D8"], 120: ["T20 S20 D20"],
    110: ["T20 S10 D20"], 100: ["T20 D20"], 99: ["T19 S10 D16"], 97: ["T19 D20"],
    96: ["T20 D18"], 95: ["T19 D19"], 94: ["T18 D20"], 92: ["T20 D16"],
    90: ["T18 D18", "T20 D15"], 86: ["T18 D16"], 84: ["T20 D12", "T16 D18"],
    82: ["DBULL D16", "T14 D20"], 81: ["T19 D12"], 80: ["T20 D10", "D20 D20"],
    78: ["T18 D12"], 76: ["T20 D8", "T16 D14"], 74: ["T14 D16", "T18 D10"],
    72: ["T16 D12", "T20 D6"], 70: ["T18 D8", "S20 DBULL"], 68: ["T20 D4", "T16 D10"],
    66: ["T10 D18", "T14 D12"], 64: ["T16 D8", "D16 D16"], 62: ["T10 D16", "T12 D13"],
    60: ["S20 D20"], 58: ["S18 D20"], 56: ["S16 D20"], 54: ["S14 D20"],
    52: ["S20 D16"], 50: ["DBULL", "S10 D20"], 48: ["S16 D16"], 46: ["S14 D16"],
    44: ["S12 D16"], 42: ["S10 D16"],
}


def _rank_throw(label: str) -> Tuple[int, int, str]:
    """Higher-value throws first, trebles before doubles before singles."""
    kind_rank = {"T": 0, "D": 1, "S": 2}.get(label[0], 3)
    return (-ALL_THROWS[label], kind_rank, label)


_SETUP = sorted(ALL_THROWS, key=_rank_throw)
_FINISHERS = sorted(FINISH_THROWS, key=lambda label: -FINISH_THROWS[label])


def _finishers_for(score: int) -> List[str]:
    return [label for label in _FINISHERS if FINISH_THROWS[label] == score]


@lru_cache(maxsize=256)
def _suggest(score: int, max_darts: int) -> Tuple[Tuple[str, ...], ...]:
    combos: List[Tuple[str, ...]] = [
        tuple(route.split()) for route in PREFERRED_ROUTES.get(score, [])
        if len(route.split()) <= max_darts
    ]
    combos.extend((last,) for last in _finishers_for(score))

    if max_darts >= 2:
        for first in _SETUP:
            rest = score - ALL_THROWS[first]
            if rest >= 2:
                combos.extend((first, last) for last in _finishers_for(rest))

    if max_darts >= 3:
        for first in _SETUP:
            for second in _SETUP:
                rest = score - ALL_THROWS[first] - ALL_THROWS[second]
                if rest >= 2:
                    combos.extend((first, second, last) for last in _finishers_for(rest))

    unique: List[Tuple[str, ...]] = []
    seen: Set[Tuple[str, ...]] = set()
    for combo in combos:
        if combo not in seen:
            seen.add(combo)
            unique.append(combo)
        if len(unique) >= MAX_SUGGESTIONS:
            break
    return tuple(unique)


def suggest_checkout(score: int, max_darts: int = 3) -> List[List[str]]:
    """
    Finishing combinations for ``score``: standard routes first, then the
    rest fewest darts first.

    Returns:
        Up to 20 combinations; empty for scores outside 2..170
    """
    if score < 2 or score > MAX_CHECKOUT or max_darts < 1:
        return []
    return [list(combo) for combo in _suggest(score, min(max_darts, 3))]
