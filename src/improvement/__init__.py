"""Improvement loop: instruction refinement, review and training rounds."""
from .apply import apply_instructions, load_current_instructions, rollback_instructions
from .controller import ControllerState, IterationController, RoundResult, RoundStatus
from .refiner import InstructionSet, refine
from .review import ConsoleReviewer, Review, ScriptedReviewer, review_pending

__all__ = [
    "apply_instructions",
    "load_current_instructions",
    "rollback_instructions",
    "ControllerState",
    "IterationController",
    "RoundResult",
    "RoundStatus",
    "InstructionSet",
    "refine",
    "ConsoleReviewer",
    "Review",
    "ScriptedReviewer",
    "review_pending",
]
