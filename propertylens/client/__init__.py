"""Client-side session polling."""

from propertylens.client.poller import PollerState, SessionPoller, ViewMode
from propertylens.client.state_channel import StateChannel

__all__ = ["PollerState", "SessionPoller", "StateChannel", "ViewMode"]
