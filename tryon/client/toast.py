"""Toast surfacing contract: which message to show and when it goes away."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from tryon.core.errors import ClassifiedError

TOAST_DURATION_SECONDS = 5.0


@dataclass(frozen=True)
class Toast:
    message: str
    kind: str = "error"


class Toaster:
    """
    Holds at most one visible toast and owns its auto-dismiss timer.

    `on_show` / `on_dismiss` are the hooks the presentation layer renders from.
    """

    def __init__(
        self,
        on_show: Optional[Callable[[Toast], None]] = None,
        on_dismiss: Optional[Callable[[Toast], None]] = None,
        duration: float = TOAST_DURATION_SECONDS,
    ):
        self.duration = duration
        self.current: Optional[Toast] = None
        self._on_show = on_show
        self._on_dismiss = on_dismiss
        self._timer: Optional[asyncio.Task] = None

    def show(self, message: str, kind: str = "error") -> Optional[Toast]:
        if not message:
            return None
        self.dismiss()
        toast = Toast(message=message, kind=kind)
        self.current = toast
        if self._on_show:
            self._on_show(toast)
        self._timer = asyncio.get_running_loop().create_task(self._auto_dismiss(toast))
        return toast

    def show_error(self, error: ClassifiedError) -> Optional[Toast]:
        if not error.visible:
            return None
        return self.show(error.user_message, "error")

    def dismiss(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        if self.current is not None:
            toast, self.current = self.current, None
            if self._on_dismiss:
                self._on_dismiss(toast)

    async def _auto_dismiss(self, toast: Toast) -> None:
        await asyncio.sleep(self.duration)
        if self.current is toast:
            self._timer = None
            self.dismiss()
