"""
Pytest configuration for backend tests.

Why: Keep every test hermetic. The collaboration core holds in-process state
(telemetry counters, rate guard entries), so fixtures hand out fresh instances
and reset module-level counters between cases.
"""
import sys
from pathlib import Path

import pytest

# Ensure packages in backend/ are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(REPO_ROOT), str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from boards.repo_memory import InMemoryBoardStore  # noqa: E402
from identity_access.domain import Principal, Role  # noqa: E402
from moderation.rate_guard import RateGuard  # noqa: E402
from workspace import telemetry  # noqa: E402
from workspace.service import WorkspaceCore  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def now(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, str, str]] = []

    def notify(self, event: str, board_id: str, target_principal_id: str, actor_principal_id: str) -> None:
        self.events.append((event, board_id, target_principal_id, actor_principal_id))


@pytest.fixture(autouse=True)
def _reset_telemetry_between_tests():
    telemetry.reset_for_tests()
    yield
    telemetry.reset_for_tests()


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch):
    """Clear configuration variables so host settings never leak into tests."""
    for var in (
        "COLLABO_ENV",
        "COLLABO_STORE_BACKEND",
        "COLLABO_DATABASE_URL",
        "DATABASE_URL",
        "COLLABO_ELEVATED_ADMINS",
        "RATE_MIN_SPACING_MS",
        "RATE_WINDOW_SECONDS",
        "RATE_WINDOW_LIMIT",
        "RATE_DUPLICATE_WINDOW_SECONDS",
        "RATE_RECENT_CAP",
        "RATE_SWEEP_EVERY",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store() -> InMemoryBoardStore:
    """Store seeded with one principal per role plus a second student."""
    s = InMemoryBoardStore()
    s.add_principal(Principal(id="admin-1", display_name="Ada Admin", role=Role.ADMIN))
    s.add_principal(Principal(id="teacher-1", display_name="Tom Teacher", role=Role.TEACHER))
    s.add_principal(Principal(id="teacher-2", display_name="Tara Teacher", role=Role.TEACHER))
    s.add_principal(Principal(id="student-1", display_name="Sam Student"))
    s.add_principal(Principal(id="student-2", display_name="Sue Student"))
    return s


@pytest.fixture
def core(store: InMemoryBoardStore, clock: FakeClock, notifier: RecordingNotifier) -> WorkspaceCore:
    return WorkspaceCore(store, rate_guard=RateGuard(clock=clock), notifier=notifier)
