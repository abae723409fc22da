"""
Worker process fixtures.
"""

from smoke_runner.fixtures.output_capture import OutputCapture
from smoke_runner.fixtures.pattern_detector import DetectionResult, Marker, PatternDetector
from smoke_runner.fixtures.process_supervisor import ProcessHandle, ProcessSupervisor

__all__ = [
    "OutputCapture",
    "DetectionResult",
    "Marker",
    "PatternDetector",
    "ProcessHandle",
    "ProcessSupervisor",
]
