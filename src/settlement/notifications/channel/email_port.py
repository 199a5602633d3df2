"""Templated email port."""

from abc import ABC, abstractmethod


class EmailPort(ABC):
    @abstractmethod
    def send_templated(self, template: str, recipient: str, variables: dict) -> dict:
        """Send the email ``template`` rendered with ``variables``.

        Returns:
            dict with keys: message_id (str|None), status ("sent"|"failed"), error (str|None)
        """
        ...
