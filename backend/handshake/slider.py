"""
Slide-to-confirm gesture state.

A one-dimensional drag that fires a confirmation callback once the handle
crosses a threshold. Two variants existed in the app:

- HOLD: threshold at a fraction of the travel (90%); stays confirmed until
  ``reset()`` is called.
- AUTO_RESET: threshold at a fixed remaining distance; resets by itself
  after a short delay.

Rendering and animation are left to whatever front end drives ``drag`` and
``release``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from handshake.config import SliderConfig

logger = logging.getLogger(__name__)


class SliderMode(str, Enum):
    HOLD = "hold"
    AUTO_RESET = "auto_reset"


class SlideToConfirm:
    def __init__(
        self,
        on_confirmed: Callable[[], None],
        travel: float,
        threshold: float = 0.9,
        confirm_within: Optional[float] = None,
        mode: SliderMode = SliderMode.HOLD,
        reset_delay: float = 1.0,
    ):
        if travel <= 0:
            raise ValueError("travel must be positive")
        self.on_confirmed = on_confirmed
        self.travel = travel
        self.threshold = threshold
        self.confirm_within = confirm_within
        self.mode = SliderMode(mode)
        self.reset_delay = reset_delay

        self.offset = 0.0
        self.confirmed = False
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    @classmethod
    def from_config(
        cls, config: SliderConfig, on_confirmed: Callable[[], None]
    ) -> SlideToConfirm:
        return cls(
            on_confirmed=on_confirmed,
            travel=config.travel,
            threshold=config.threshold,
            confirm_within=config.confirm_within,
            mode=SliderMode(config.mode),
            reset_delay=config.reset_delay_seconds,
        )

    @property
    def threshold_offset(self) -> float:
        if self.confirm_within is not None:
            return max(self.travel - self.confirm_within, 0.0)
        return self.travel * self.threshold

    @property
    def progress(self) -> float:
        return self.offset / self.travel

    def drag(self, delta: float) -> bool:
        """Move the handle by delta. Returns True on the confirming drag."""
        if self.confirmed:
            return False

        self.offset = min(max(self.offset + delta, 0.0), self.travel)
        if self.offset < self.threshold_offset:
            return False

        self.confirmed = True
        logger.debug("Slider confirmed")
        self.on_confirmed()
        if self.mode is SliderMode.AUTO_RESET:
            self._schedule_reset()
        return True

    def release(self) -> None:
        """End of gesture: snap back unless confirmed."""
        if not self.confirmed:
            self.offset = 0.0

    def reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        self.offset = 0.0
        self.confirmed = False

    def _schedule_reset(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; auto reset left to the caller")
            return
        self._reset_handle = loop.call_later(self.reset_delay, self.reset)
