"""Model acquisition state machine."""

import logging
from typing import Callable, Optional

from .errors import InvalidTransition
from .models import SessionStatus

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionStatus], None]


class SessionState:
    """
    Guards which session operations are currently permitted.

    Transitions:
    - UNSTARTED -> LOADING
    - ERROR -> LOADING (retry)
    - READY -> LOADING (reload)
    - LOADING -> READY | ERROR

    Anything else raises InvalidTransition. The UI is expected to disable
    controls so illegal transitions are unreachable, but this class does
    not rely on that.
    """

    def __init__(self, on_change: Optional[StateCallback] = None):
        self._status = SessionStatus.UNSTARTED
        self._on_change = on_change

    @property
    def status(self) -> SessionStatus:
        return self._status

    def can_start_load(self) -> bool:
        return self._status in (SessionStatus.UNSTARTED, SessionStatus.ERROR)

    def can_reload(self) -> bool:
        return self._status == SessionStatus.READY

    def can_send(self) -> bool:
        return self._status == SessionStatus.READY

    def begin_load(self) -> None:
        if not (self.can_start_load() or self.can_reload()):
            raise InvalidTransition(self._status.value, "begin load")
        self._set(SessionStatus.LOADING)

    def complete_load(self, success: bool) -> None:
        if self._status != SessionStatus.LOADING:
            raise InvalidTransition(self._status.value, "complete load")
        self._set(SessionStatus.READY if success else SessionStatus.ERROR)

    def _set(self, status: SessionStatus) -> None:
        previous = self._status
        self._status = status
        logger.info(f"Session state {previous.value} -> {status.value}")
        if self._on_change is not None:
            self._on_change(status)
