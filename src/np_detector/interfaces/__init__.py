"""Result types returned to detector callers."""

from .detection_result import DetectionEvent, DetectionResult

__all__ = ['DetectionEvent', 'DetectionResult']
