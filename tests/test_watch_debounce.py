"""
Watch mode / ChangeHandler debounce tests.
No real filesystem events: mock event objects drive the filter and debounce logic.
"""
import time
from unittest.mock import MagicMock

from figma_agent.cli import ChangeHandler, _WATCHED_EXTENSIONS


# ─── helper: fake FileModifiedEvent ──────────────────────────────────────────

def make_event(src_path: str, is_directory: bool = False):
    ev = MagicMock()
    ev.is_directory = is_directory
    ev.src_path = src_path
    return ev


# ─── ChangeHandler.on_modified filtering ────────────────────────────────────

class TestChangeHandlerFilter:
    """Directories, extensions and the watched path set."""

    def setup_method(self):
        self.callback = MagicMock()
        self.executor = MagicMock()
        self.handler = ChangeHandler(self.callback, self.executor, debounce=0.0)

    def test_directory_event_ignored(self):
        self.handler.on_modified(make_event("/designs/", is_directory=True))
        self.executor.submit.assert_not_called()

    def test_non_watched_extension_ignored(self):
        for ext in [".png", ".md", ".css", ".lock", ".tsx"]:
            self.handler.on_modified(make_event(f"/designs/file{ext}"))
        self.executor.submit.assert_not_called()

    def test_watched_extensions_submit_callback(self):
        for ext in _WATCHED_EXTENSIONS:
            self.executor.reset_mock()
            self.handler.last_trigger = 0
            self.handler.on_modified(make_event(f"/designs/landing{ext}"))
            self.executor.submit.assert_called_once_with(self.callback)

    def test_callback_not_run_on_observer_thread(self):
        self.handler.on_modified(make_event("/designs/landing.json"))
        self.callback.assert_not_called()

    def test_paths_restrict_to_watched_files(self, tmp_path):
        design = tmp_path / "landing.json"
        handler = ChangeHandler(self.callback, self.executor, debounce=0.0, paths={str(design)})

        handler.on_modified(make_event(str(tmp_path / "other.json")))
        self.executor.submit.assert_not_called()

        handler.on_modified(make_event(str(design)))
        self.executor.submit.assert_called_once()


# ─── ChangeHandler debounce ─────────────────────────────────────────────────

class TestChangeHandlerDebounce:
    """Repeated events inside the window submit only once."""

    def setup_method(self):
        self.executor = MagicMock()
        self.handler = ChangeHandler(MagicMock(), self.executor, debounce=0.5)

    def test_debounce_blocks_rapid_events(self):
        ev = make_event("/designs/landing.json")
        self.handler.on_modified(ev)
        self.handler.on_modified(ev)
        self.handler.on_modified(ev)
        assert self.executor.submit.call_count == 1

    def test_debounce_allows_event_after_window(self):
        ev = make_event("/designs/landing.json")
        self.handler.on_modified(ev)
        assert self.executor.submit.call_count == 1

        # pretend the window has passed
        self.handler.last_trigger = time.time() - 1.0

        self.handler.on_modified(ev)
        assert self.executor.submit.call_count == 2

    def test_debounce_timestamp_updated(self):
        before = time.time() - 0.01
        self.handler.on_modified(make_event("/designs/landing.json"))
        assert self.handler.last_trigger >= before


# ─── _WATCHED_EXTENSIONS ────────────────────────────────────────────────────

def test_watched_extensions_cover_design_exports():
    assert ".json" in _WATCHED_EXTENSIONS


def test_watched_extensions_exclude_generated_output():
    for ext in (".html", ".css", ".tsx", ".vue", ".js", ".png", ".svg"):
        assert ext not in _WATCHED_EXTENSIONS, f"{ext} must not retrigger generation"
