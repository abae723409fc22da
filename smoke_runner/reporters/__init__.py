"""
Run reporters package.
"""

from smoke_runner.reporters.log_extractor import LogExtractor

__all__ = [
    "LogExtractor",
]
