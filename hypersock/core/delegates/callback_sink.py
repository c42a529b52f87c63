from typing import Any

from .delegate_queue import DelegateQueue


class CallbackSink:
    """
    Routes one owner's events to its delegate through a delegate queue.
    The delegate method is looked up when the callback runs, so a
    delegate swapped mid-stream receives every event still queued.
    """

    def __init__(
        self,
        owner: Any,
        delegate: Any,
        queue: DelegateQueue,
    ):
        self.owner = owner
        self.delegate = delegate
        self.queue = queue
        self.terminated = False

    def reset(self):
        self.terminated = False

    def dispatch(self, method: str, *args: Any) -> bool:
        if self.terminated:
            return False

        self.queue.dispatch(self._invoke, method, args, name=method)
        return True

    def terminate(self, method: str, *args: Any) -> bool:
        dispatched = self.dispatch(method, *args)
        self.terminated = True

        return dispatched

    def _invoke(self, method: str, args: tuple[Any, ...]):
        callback = getattr(self.delegate, method, None)
        if callback is None:
            return None

        return callback(self.owner, *args)
