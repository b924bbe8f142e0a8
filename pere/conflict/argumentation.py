"""
Abstract argumentation over evidence.

Each evidence item is an argument whose strength is its confidence. An
attack exists when the attacker's contradiction/inconsistency score against
the target exceeds the attack threshold. Strength plays no part in whether
an attack succeeds; it only picks the winner among accepted arguments.

The grounded extension is the least fixed point of "admit every argument all
of whose attackers are already out". Mutually attacking arguments with no
outside defender are therefore both left out.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..types import Evidence


@dataclass
class Argument:
    id: str
    evidence: Evidence
    strength: float
    attacks: Dict[int, float] = field(default_factory=dict)    # target index -> attack strength


class ArgumentationFramework:

    def __init__(self, arguments: List[Argument]):
        self.arguments = arguments

    @classmethod
    def build(
        cls,
        evidence: Sequence[Evidence],
        attack_strength: Callable[[Evidence, Evidence], float],
        threshold: float,
    ) -> "ArgumentationFramework":
        arguments = [
            Argument(id=f"arg_{i}", evidence=e, strength=e.confidence)
            for i, e in enumerate(evidence)
        ]
        for i, attacker in enumerate(arguments):
            for j, target in enumerate(arguments):
                if i == j:
                    continue
                strength = attack_strength(attacker.evidence, target.evidence)
                if strength > threshold:
                    attacker.attacks[j] = strength
        return cls(arguments)

    def defeaters(self, index: int) -> List[int]:
        """Every argument attacking `index`."""
        return [i for i, arg in enumerate(self.arguments) if index in arg.attacks]

    def grounded_extension(self) -> List[Argument]:
        accepted: Set[int] = set()
        rejected: Set[int] = set()
        defeaters = {i: self.defeaters(i) for i in range(len(self.arguments))}

        changed = True
        while changed:
            changed = False
            for i in range(len(self.arguments)):
                if i in accepted or i in rejected:
                    continue
                if all(d in rejected for d in defeaters[i]):
                    accepted.add(i)
                    changed = True
                    for j, ds in defeaters.items():
                        if i in ds and j not in accepted:
                            rejected.add(j)

        return [self.arguments[i] for i in sorted(accepted)]

    @property
    def attack_count(self) -> int:
        return sum(len(a.attacks) for a in self.arguments)


def select_winner(extension: Sequence[Argument]) -> Optional[Argument]:
    """Strongest accepted argument; the earliest wins ties."""
    best = None
    for arg in extension:
        if best is None or arg.strength > best.strength:
            best = arg
    return best
