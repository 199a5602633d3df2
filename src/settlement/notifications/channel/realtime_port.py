"""Realtime publish port."""

from abc import ABC, abstractmethod
from enum import Enum


class PublishAction(Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class AudienceScope(Enum):
    GROUP = "group"
    USER = "user"


class RealtimePort(ABC):
    @abstractmethod
    def publish(self, topic: str, payload: dict, action: str, scope: str, audience: str) -> dict:
        """Publish ``payload`` on ``topic`` to a group or a single user.

        Returns:
            dict with keys: message_id (str|None), status ("sent"|"failed"), error (str|None)
        """
        ...
