"""Capture and vision extraction collaborators, and the learning run."""
from agents.capture import CaptureResult, PageCapture
from agents.extractor import Extractor, RawCandidate, VisionExtractor, parse_candidates
from agents.learn import LearningRun, run_learning

__all__ = [
    "CaptureResult",
    "PageCapture",
    "Extractor",
    "RawCandidate",
    "VisionExtractor",
    "parse_candidates",
    "LearningRun",
    "run_learning",
]
