"""Arithmetic question generation with a fixed difficulty curve.

The generator is pure apart from its round counter: each call to
``next_question`` advances the counter, derives the difficulty tier from it
and fills one of the tier's expression shapes with random operands. Every
shape has a well-defined answer (no division by zero, no negative roots).
"""

import random
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, Tuple

MIN_TIER = 1
MAX_TIER = 4

PERCENTAGES = [5, 10, 15, 20, 25, 50]
PERFECT_SQUARES = [n * n for n in range(2, 16)]


def round_half_up(value: float, places: int = 1) -> float:
    """Round to ``places`` decimals with ties going up (2.25 -> 2.3)."""
    step = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(step, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class GeneratedQuestion:
    expression: str
    answer_value: float
    difficulty_tier: int
    round_index: int


def tier_for_round(round_index: int, rng: Optional[random.Random] = None) -> int:
    """Map a 1-based round number to its difficulty tier."""
    if round_index <= 3:
        return 1
    if round_index <= 7:
        return 2
    if round_index <= 12:
        return 3
    return (rng or random).randint(MIN_TIER, MAX_TIER)


def _tier_one(rng: random.Random) -> Tuple[str, float]:
    op = rng.choice(['+', '-', '×', '÷'])
    if op == '+':
        a, b = rng.randint(5, 99), rng.randint(5, 99)
        answer = a + b
    elif op == '-':
        a = rng.randint(20, 99)
        b = rng.randint(5, a)
        answer = a - b
    elif op == '×':
        a, b = rng.randint(2, 12), rng.randint(2, 12)
        answer = a * b
    else:
        b = rng.randint(2, 12)
        answer = rng.randint(2, 12)
        a = b * answer
    return f'{a} {op} {b}', float(answer)


def _tier_two(rng: random.Random) -> Tuple[str, float]:
    a, b, c = rng.randint(2, 15), rng.randint(2, 15), rng.randint(2, 10)
    smaller = b if b < a else 1
    shapes = [
        (f'{a} × {b} + {c}', a * b + c),
        (f'{a} × {b} - {c}', a * b - c),
        (f'({a} + {b}) × {c}', (a + b) * c),
        (f'({a} - {smaller}) × {c}', (a - smaller) * c),
        (f'{a * b} ÷ {a} + {c}', b + c),
        (f'{a} × {b} ÷ {c}', round_half_up(a * b / c)),
    ]
    expression, answer = rng.choice(shapes)
    return expression, float(answer)


def _tier_three(rng: random.Random) -> Tuple[str, float]:
    shape = rng.randint(0, 2)
    if shape == 0:
        n = rng.randint(5, 20)
        return f'{n}²', float(n * n)
    if shape == 1:
        pct = rng.choice(PERCENTAGES)
        base = rng.randint(2, 20) * 10
        return f'{pct}% of {base}', pct * base / 100
    square = rng.choice(PERFECT_SQUARES)
    return f'√{square}', float(int(square ** 0.5))


def _tier_four(rng: random.Random) -> Tuple[str, float]:
    a, b, c, d = (rng.randint(2, 10) for _ in range(4))
    shapes = [
        (f'{a}² + {b} × {c}', a * a + b * c),
        (f'({a} + {b})² - {c * d}', (a + b) * (a + b) - c * d),
        (f'{a} × {b} + {c} × {d}', a * b + c * d),
        (f'({a} × {b} - {c}) ÷ {d}', round_half_up((a * b - c) / d)),
    ]
    expression, answer = rng.choice(shapes)
    return expression, float(answer)


TIER_BUILDERS: List[Callable[[random.Random], Tuple[str, float]]] = [
    _tier_one,
    _tier_two,
    _tier_three,
    _tier_four,
]


def build_question(tier: int, rng: Optional[random.Random] = None) -> Tuple[str, float]:
    if not MIN_TIER <= tier <= MAX_TIER:
        raise ValueError(f'difficulty tier must be between {MIN_TIER} and {MAX_TIER}, got {tier}')
    return TIER_BUILDERS[tier - 1](rng or random.Random())


class QuestionGenerator:
    """Round counter plus the tier curve.

    Only the round sequencer calls ``next_question``; the counter is reset
    when a match restarts and resumed from storage after a process restart.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.round_count = 0

    def next_question(self) -> GeneratedQuestion:
        self.round_count += 1
        tier = tier_for_round(self.round_count, self.rng)
        expression, answer = build_question(tier, self.rng)
        return GeneratedQuestion(
            expression=expression,
            answer_value=answer,
            difficulty_tier=tier,
            round_index=self.round_count,
        )

    def reset(self) -> None:
        self.round_count = 0

    def resume(self, round_count: int) -> None:
        self.round_count = max(0, int(round_count))
