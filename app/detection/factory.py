from typing import ClassVar

from app.config.settings import Settings
from app.detection.detector import Detector
from app.detection.example_client_adapter import ExampleClientAdapter
from app.detection.realitydefender_client_adapter import RealityDefenderClientAdapter


class DetectorFactory:
    """Creates the configured detector."""

    PROVIDERS: ClassVar[tuple[str, ...]] = ("example", "realitydefender")

    @classmethod
    def create(cls, settings: Settings) -> Detector:
        provider = settings.detection_provider.lower()
        if provider == "example":
            return Detector(client=ExampleClientAdapter())
        if provider == "realitydefender":
            return Detector(
                client=RealityDefenderClientAdapter(
                    api_key=settings.detection_api_key,
                    base_url=settings.detection_base_url,
                    timeout_seconds=settings.detection_timeout_seconds,
                    poll_attempts=settings.detection_poll_attempts,
                    poll_interval_seconds=settings.detection_poll_interval_seconds,
                )
            )
        raise ValueError(
            f"Unknown detection provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )
