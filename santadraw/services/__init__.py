from santadraw.services.assignment import generate_assignments
from santadraw.services.draw import DrawOrchestrator, DrawResult, DrawValidation
from santadraw.services.errors import (
    AlgorithmExhaustedError,
    AlreadyCompletedError,
    DrawError,
    InfeasibilityReason,
    InfeasibleError,
    InvalidRuleError,
)
from santadraw.services.exclusions import ExclusionGraph
from santadraw.services.feasibility import check_feasibility

__all__ = [
    "AlgorithmExhaustedError",
    "AlreadyCompletedError",
    "DrawError",
    "DrawOrchestrator",
    "DrawResult",
    "DrawValidation",
    "ExclusionGraph",
    "InfeasibilityReason",
    "InfeasibleError",
    "InvalidRuleError",
    "check_feasibility",
    "generate_assignments",
]
