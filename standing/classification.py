"""Academic standing classification.

Everything here is a pure function of its arguments. Thresholds come from a
``StandingPolicy`` built from settings, never from module constants.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Mapping

PASS = "pass"
PROBATION = "probation"
WITHDRAWAL = "withdrawal"
TERMINATION = "termination"
CATEGORIES = (PASS, PROBATION, WITHDRAWAL, TERMINATION)

PROBATION_NONE = "none"
PROBATION_ACTIVE = "probation"
PROBATION_LIFTED = "probation_lifted"

TERMINATION_NONE = "none"
TERMINATION_WITHDRAWN = "withdrawn"
TERMINATION_TERMINATED = "terminated"

DEGREE_CLASS_BANDS = (
    (4.50, "first_class"),
    (3.50, "second_class_upper"),
    (2.50, "second_class_lower"),
    (1.50, "third_class"),
)
DEGREE_CLASS_FAIL = "fail"
DEGREE_CLASSES = tuple(label for _, label in DEGREE_CLASS_BANDS) + (DEGREE_CLASS_FAIL,)

REMARKS = {
    PASS: "good",
    PROBATION: "probation",
    WITHDRAWAL: "withdrawn",
    TERMINATION: "terminated",
}
EXCELLENT_REMARK = "excellent"


@dataclass(frozen=True)
class StandingPolicy:
    probation_cgpa: float = 1.50
    withdrawal_cgpa: float = 1.00
    probation_carryover_count: int = 5
    termination_carryover_count: int = 9
    excellent_cgpa: float = 4.50
    sticky_termination: bool = True

    @classmethod
    def from_mapping(cls, values: Mapping) -> "StandingPolicy":
        known = {item.name for item in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown standing policy keys: {', '.join(sorted(unknown))}")
        return cls(**dict(values))


@dataclass(frozen=True)
class PriorStanding:
    probation_status: str = PROBATION_NONE
    termination_status: str = TERMINATION_NONE

    @property
    def on_probation(self) -> bool:
        return self.probation_status == PROBATION_ACTIVE

    @property
    def terminated(self) -> bool:
        return self.termination_status == TERMINATION_TERMINATED


@dataclass(frozen=True)
class StandingDecision:
    category: str
    probation_status: str
    termination_status: str
    degree_class: str
    remark: str
    action: str


def degree_class(cgpa: float | None) -> str:
    if cgpa is None:
        return DEGREE_CLASS_FAIL
    for floor, label in DEGREE_CLASS_BANDS:
        if cgpa >= floor:
            return label
    return DEGREE_CLASS_FAIL


def _below(cgpa: float | None, threshold: float) -> bool:
    return cgpa is not None and cgpa < threshold


def classify(
    cgpa: float | None,
    carryover_count: int,
    prior: PriorStanding,
    policy: StandingPolicy,
) -> StandingDecision:
    """Assign exactly one standing category.

    Precedence is termination, withdrawal, probation, pass. A student with no
    cumulative units yet (``cgpa`` is None) is judged on carryovers alone.
    """

    klass = degree_class(cgpa)

    if (prior.terminated and policy.sticky_termination) or carryover_count >= policy.termination_carryover_count:
        return StandingDecision(
            TERMINATION,
            prior.probation_status,
            TERMINATION_TERMINATED,
            klass,
            REMARKS[TERMINATION],
            "terminate",
        )
    if prior.on_probation and _below(cgpa, policy.withdrawal_cgpa):
        return StandingDecision(
            WITHDRAWAL,
            PROBATION_ACTIVE,
            TERMINATION_WITHDRAWN,
            klass,
            REMARKS[WITHDRAWAL],
            "withdraw",
        )
    if _below(cgpa, policy.probation_cgpa) or carryover_count >= policy.probation_carryover_count:
        return StandingDecision(
            PROBATION,
            PROBATION_ACTIVE,
            TERMINATION_NONE,
            klass,
            REMARKS[PROBATION],
            "probation",
        )

    probation_status = PROBATION_LIFTED if prior.on_probation else prior.probation_status
    remark = EXCELLENT_REMARK if cgpa is not None and cgpa >= policy.excellent_cgpa else REMARKS[PASS]
    return StandingDecision(
        PASS,
        probation_status,
        TERMINATION_NONE,
        klass,
        remark,
        "lift_probation" if prior.on_probation else "none",
    )
