"""Tests for the tokenator command line entry point."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import pytest

from tokenator import distribute_credentials
from tokenator._config import Credentials, TokenatorConfig
from tokenator._errors import AuthenticationError
from tokenator._manager import Manager
from tokenator.distribute_credentials import main, split_repos

ENVIRONMENT = {
    "TOKENATOR_SNAPCRAFTERS_ORG_PAT": "org-pat",
    "TOKENATOR_SNAPCRAFT_LOGIN": "store@example.com",
    "TOKENATOR_SNAPCRAFT_PASSWORD": "store-pass",
    "TOKENATOR_LP_AUTH": "lp-creds",
    "TOKENATOR_SNAPCRAFTERS_BOT_LOGIN": "snapcrafters-bot",
    "TOKENATOR_SNAPCRAFTERS_BOT_PASSWORD": "bot-pass",
    "TOKENATOR_APP_ID": "1234",
    "TOKENATOR_APP_SECRET": "pem",
}


class RecordingManager:
    """Replacement for :class:`Manager` that records what it would process."""

    runs: list[tuple[TokenatorConfig, list[str]]] = []
    error: Exception | None = None

    def __init__(self, config: TokenatorConfig) -> None:
        self.config = config

    @classmethod
    def from_credentials(cls, config: TokenatorConfig, credentials: Credentials) -> RecordingManager:
        assert credentials.bot.login == "snapcrafters-bot"
        return cls(config)

    def process(self, names: Iterable[str] = ()) -> None:
        if self.error is not None:
            raise self.error
        self.runs.append((self.config, list(names)))


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "tokenator.yaml"
    path.write_text("org: snapcrafters\nrepos:\n  - name: a\n  - name: b\n", encoding="utf-8")
    return path


@pytest.fixture
def recording_manager(monkeypatch: pytest.MonkeyPatch) -> type[RecordingManager]:
    monkeypatch.setattr(RecordingManager, "runs", [])
    monkeypatch.setattr(RecordingManager, "error", None)
    monkeypatch.setattr(distribute_credentials, "Manager", RecordingManager)
    for key, value in ENVIRONMENT.items():
        monkeypatch.setenv(key, value)
    return RecordingManager


def test_split_repos_drops_blanks() -> None:
    assert split_repos(" a, b ,,c ") == ["a", "b", "c"]
    assert split_repos("") == []


def test_main_processes_selected_repositories(
    config_file: Path, recording_manager: type[RecordingManager]
) -> None:
    assert main(repos="b,a", config=config_file) == 0

    [(config, names)] = recording_manager.runs
    assert config.org == "snapcrafters"
    assert names == ["b", "a"]


def test_main_processes_everything_without_repos(
    config_file: Path, recording_manager: type[RecordingManager]
) -> None:
    assert main(config=config_file, verbose=True) == 0

    assert recording_manager.runs[0][1] == []


def test_main_reports_missing_credentials(
    config_file: Path,
    recording_manager: type[RecordingManager],
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.delenv("TOKENATOR_APP_SECRET")

    assert main(config=config_file) == 1

    assert recording_manager.runs == []
    assert "TOKENATOR_APP_SECRET is required" in caplog.text


def test_main_reports_missing_config(
    tmp_path: Path,
    recording_manager: type[RecordingManager],
    caplog: pytest.LogCaptureFixture,
) -> None:
    assert main(config=tmp_path / "absent.yaml") == 1

    assert "does not exist" in caplog.text


def test_main_exits_non_zero_on_upstream_failure(
    config_file: Path,
    recording_manager: type[RecordingManager],
    caplog: pytest.LogCaptureFixture,
) -> None:
    recording_manager.error = AuthenticationError("incorrect username or password.")

    assert main(config=config_file) == 1

    assert "incorrect username or password." in caplog.text


def test_manager_is_wired_to_real_clients() -> None:
    config = TokenatorConfig(org="snapcrafters")
    credentials = distribute_credentials.resolve_credentials(ENVIRONMENT)

    manager = Manager.from_credentials(config, credentials)

    assert manager.launchpad_secret == "lp-creds"
    assert manager.approvals.org == "snapcrafters"  # type: ignore[attr-defined]
    assert manager.repo_secrets.org == "snapcrafters"  # type: ignore[attr-defined]
    assert len(manager.run_id) == 4


def test_config_path_can_come_from_environment(
    config_file: Path,
    recording_manager: type[RecordingManager],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("TOKENATOR_CONFIG", str(config_file))

    assert main() == 0

    assert recording_manager.runs[0][0].org == "snapcrafters"


def test_version_flag_reports_the_installed_distribution(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        distribute_credentials.metadata,
        "version",
        lambda name: "1.2.3" if name == "tokenator" else "0",
    )

    assert distribute_credentials.app.version is distribute_credentials.package_version
    assert distribute_credentials.package_version() == "1.2.3"


def test_version_is_unknown_outside_an_install(monkeypatch: pytest.MonkeyPatch) -> None:
    def missing(name: str) -> str:
        raise distribute_credentials.metadata.PackageNotFoundError(name)

    monkeypatch.setattr(distribute_credentials.metadata, "version", missing)

    assert distribute_credentials.package_version() == "unknown"


def test_module_is_not_a_standalone_script() -> None:
    source = Path(distribute_credentials.__file__).read_text(encoding="utf-8")

    assert not source.startswith("#!"), "the tokenator console script is the entry point"
