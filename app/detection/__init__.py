from app.detection.detector import Detector
from app.detection.dispatcher import DetectionDispatcher
from app.detection.factory import DetectorFactory

__all__ = ["DetectionDispatcher", "Detector", "DetectorFactory"]
