# Cancellable periodic task that drives the simulation tick
import logging
import threading

_LOGGER = logging.getLogger(__name__)


class Ticker:
    """
    Fixed-cadence timer with an explicit stop handle. Use as a context manager.
    One daemon thread calls the callback every `interval` seconds, so two ticks
    never overlap; a slow tick delays the next one instead.
    """

    def __init__(self, interval, callback, name="ecopulse-ticker", join_timeout=None):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self.join_timeout = interval + 5.0 if join_timeout is None else join_timeout
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Spawn the tick thread. Starting while the previous thread is alive is an error."""
        if self.running:
            raise RuntimeError("Ticker already running")
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(self._stop,), daemon=True, name=self.name)
        self._thread.start()
        return self

    def stop(self):
        """Signal the thread and join it. Safe to call more than once."""
        self._stop.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=self.join_timeout)
        # A callback still running past the join keeps the handle, so start() refuses to double up
        if not thread.is_alive():
            self._thread = None
        else:
            _LOGGER.warning("Tick thread %s still running after stop", self.name)

    def _run(self, stop):
        # wait() returns True as soon as stop() is signalled
        while not stop.wait(self.interval):
            try:
                self.callback()
            except Exception:
                _LOGGER.exception("Tick callback failed")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
