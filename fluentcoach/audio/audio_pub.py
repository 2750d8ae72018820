"""Audio publisher module for pub/sub event publishing."""

import logging
from pubsub import pub

from ..models.audio import CaptureStatus, LevelFrame

logger = logging.getLogger(__name__)

LEVEL_TOPIC = "audio.level"
STATUS_TOPIC = "capture.status"


class AudioPublisher:
    """Publishes capture status changes and live level frames using pubsub.pub."""

    def __init__(self, level_topic: str = LEVEL_TOPIC, status_topic: str = STATUS_TOPIC):
        """Initialize audio publisher.

        Args:
            level_topic: Pub/sub topic for visualisation frames
            status_topic: Pub/sub topic for capture state transitions
        """
        self.level_topic = level_topic
        self.status_topic = status_topic
        logger.info(f"AudioPublisher initialized with topics: {level_topic}, {status_topic}")

    def publish_level(self, frame: LevelFrame) -> None:
        pub.sendMessage(self.level_topic, frame=frame)

    def publish_status(self, previous: CaptureStatus, current: CaptureStatus) -> None:
        pub.sendMessage(self.status_topic, previous=previous, current=current)
        logger.debug(f"Capture status: {previous.value} -> {current.value}")
