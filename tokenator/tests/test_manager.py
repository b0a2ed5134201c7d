"""Unit tests for the credential distribution orchestrator."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from tokenator._config import Track, parse_config
from tokenator._errors import CleanupError, TokenatorError, UpstreamProtocolError
from tokenator._manager import Manager
from tokenator._pat_models import PersonalToken

RUN_ID = "beef"


@dataclass
class Journal:
    """Ordered record of every upstream action the fakes perform."""

    events: list[tuple[str, ...]] = field(default_factory=list)


@dataclass
class FakeStore:
    journal: Journal
    fail_on: str | None = None

    def generate_store_token(self, package: str, track: str, channel: str) -> str:
        self.journal.events.append(("store", package, track, channel))
        if channel == self.fail_on:
            msg = "unexpected status 500"
            raise UpstreamProtocolError(msg)
        return f"store-{channel}"


@dataclass
class FakeSecrets:
    journal: Journal
    values: dict[tuple[str, str, str], str] = field(default_factory=dict)

    def set_environment_secret(self, repo: str, track: Track, name: str, value: str) -> None:
        self.journal.events.append(("secret", repo, track.environment, name))
        self.values[(repo, track.environment, name)] = value


@dataclass
class FakePats:
    journal: Journal
    existing: list[PersonalToken] = field(default_factory=list)
    undeletable: set[str] = field(default_factory=set)
    deleted: list[str] = field(default_factory=list)
    blank_tokens: bool = False

    def list(self, name_filter: str = "") -> list[PersonalToken]:
        self.journal.events.append(("list", name_filter))
        return [token for token in self.existing if name_filter in token.name]

    def create(self, name: str, repos: Sequence[str], owner: str) -> PersonalToken:
        self.journal.events.append(("create", name, *repos))
        value = None if self.blank_tokens else f"pat-{name}"
        return PersonalToken(id="900", name=name, token=value, delete_token="d")

    def delete(self, token: PersonalToken) -> None:
        self.journal.events.append(("delete", token.name))
        if token.name in self.undeletable:
            msg = "error deleting personal access token"
            raise UpstreamProtocolError(msg)
        self.deleted.append(token.name)


@dataclass
class FakeApprovals:
    journal: Journal

    def approve_pending_token_request(self, repo: str, token_name: str | None = None) -> None:
        self.journal.events.append(("approve", repo, token_name or ""))


def _make_manager(
    config_payload: dict[str, object] | None = None,
    *,
    existing: Sequence[str] = (),
    undeletable: set[str] | None = None,
    store_fail_on: str | None = None,
) -> tuple[Manager, Journal, FakeSecrets, FakePats]:
    journal = Journal()
    secrets = FakeSecrets(journal)
    pats = FakePats(
        journal,
        existing=[PersonalToken(id=str(index), name=name) for index, name in enumerate(existing)],
        undeletable=undeletable or set(),
    )
    config = parse_config(
        config_payload or {"org": "snapcrafters", "repos": [{"name": "sample-app"}]}
    )
    manager = Manager(
        config=config,
        launchpad_secret="lp-creds",
        store=FakeStore(journal, fail_on=store_fail_on),
        repo_secrets=secrets,
        pats=pats,
        approvals=FakeApprovals(journal),
        run_id=RUN_ID,
    )
    return manager, journal, secrets, pats


def test_sample_app_receives_four_secrets_in_order() -> None:
    manager, journal, secrets, _ = _make_manager()

    manager.process()

    secret_events = [event for event in journal.events if event[0] == "secret"]
    assert secret_events == [
        ("secret", "sample-app", "Candidate Branch", "SNAP_STORE_CANDIDATE"),
        ("secret", "sample-app", "Candidate Branch", "SNAP_STORE_STABLE"),
        ("secret", "sample-app", "Candidate Branch", "LP_BUILD_SECRET"),
        ("secret", "sample-app", "Candidate Branch", "SNAPCRAFTERS_BOT_COMMIT"),
    ]
    assert secrets.values[("sample-app", "Candidate Branch", "LP_BUILD_SECRET")] == "lp-creds"
    assert (
        secrets.values[("sample-app", "Candidate Branch", "SNAPCRAFTERS_BOT_COMMIT")]
        == "pat-token8r-beef-sample%2Dapp-latest"
    )
    assert ("store", "sample-app", "latest", "candidate") in journal.events
    assert ("store", "sample-app", "latest", "stable") in journal.events


def test_bot_token_is_created_then_approved_before_install() -> None:
    manager, journal, _, _ = _make_manager()

    manager.process()

    create = (
        "create",
        "token8r-beef-sample%2Dapp-latest",
        "snapcrafters/sample-app",
        "snapcrafters/ci-screenshots",
    )
    approve = ("approve", "sample-app", "token8r-beef-sample%2Dapp-latest")
    install = ("secret", "sample-app", "Candidate Branch", "SNAPCRAFTERS_BOT_COMMIT")
    assert journal.events[0] == ("list", "token8r"), "existing tokens are listed first"
    assert journal.events.index(create) < journal.events.index(approve)
    assert journal.events.index(approve) < journal.events.index(install)


def test_cleanup_deletes_only_prior_tokens_for_the_same_pair() -> None:
    manager, journal, _, pats = _make_manager(
        existing=[
            "token8r-0001-sample%2Dapp-latest",
            "token8r-beef-sample%2Dapp-latest",
            "token8r-0002-sample%2Dapp2-latest",
            "token8r-0003-sample%2Dapp-5.2",
            "token8r-0004-sample-app-latest",
            "sample-app-latest-by-hand",
        ]
    )

    manager.process()

    assert pats.deleted == ["token8r-0001-sample%2Dapp-latest"]
    install = journal.events.index(
        ("secret", "sample-app", "Candidate Branch", "SNAPCRAFTERS_BOT_COMMIT")
    )
    assert journal.events.index(("delete", "token8r-0001-sample%2Dapp-latest")) > install


def test_cleanup_failure_is_reported_after_trying_every_token(
    caplog: pytest.LogCaptureFixture,
) -> None:
    manager, journal, secrets, pats = _make_manager(
        existing=["token8r-0001-sample%2Dapp-latest", "token8r-0002-sample%2Dapp-latest"],
        undeletable={"token8r-0001-sample%2Dapp-latest"},
    )

    with pytest.raises(CleanupError, match="token8r-0001-sample%2Dapp-latest"):
        manager.process()

    assert pats.deleted == ["token8r-0002-sample%2Dapp-latest"]
    assert ("sample-app", "Candidate Branch", "SNAPCRAFTERS_BOT_COMMIT") in secrets.values
    assert "failed to delete personal access token token8r-0001" in caplog.text


def test_first_failure_stops_the_run_with_context() -> None:
    manager, journal, secrets, _ = _make_manager(
        {"org": "snapcrafters", "repos": [{"name": "a"}, {"name": "b"}]},
        store_fail_on="stable",
    )

    with pytest.raises(UpstreamProtocolError, match="failed to set latest/stable store secret"):
        manager.process()

    assert list(secrets.values) == [("a", "Candidate Branch", "SNAP_STORE_CANDIDATE")]
    assert not any(event[1] == "b" for event in journal.events if event[0] == "store")


def test_process_restricts_to_named_repositories_and_tracks() -> None:
    manager, journal, secrets, _ = _make_manager(
        {
            "org": "snapcrafters",
            "repos": [
                {"name": "a"},
                {
                    "name": "b",
                    "tracks": [
                        {"name": "latest", "branch": "candidate", "environment": "Candidate Branch"},
                        {"name": "5.2", "branch": "5.2", "environment": "5.2 Branch"},
                    ],
                },
            ],
        }
    )

    manager.process(["b"])

    repos = {repo for repo, _, _ in secrets.values}
    assert repos == {"b"}
    environments = {env for _, env, _ in secrets.values}
    assert environments == {"Candidate Branch", "5.2 Branch"}
    assert ("create", "token8r-beef-b-5.2", "snapcrafters/b", "snapcrafters/ci-screenshots") in (
        journal.events
    )


def test_list_failure_is_reported_before_any_secret() -> None:
    manager, journal, secrets, pats = _make_manager()

    def broken_list(name_filter: str = "") -> list[PersonalToken]:
        msg = "unexpected status 502"
        raise UpstreamProtocolError(msg)

    pats.list = broken_list  # type: ignore[method-assign]

    with pytest.raises(TokenatorError, match="failed to list personal access tokens"):
        manager.process()

    assert secrets.values == {}


def test_cleanup_distinguishes_hyphenated_repo_and_track_pairs() -> None:
    manager, _, _, pats = _make_manager(
        {
            "org": "snapcrafters",
            "repos": [
                {
                    "name": "signal",
                    "tracks": [
                        {"name": "desktop-latest", "branch": "candidate", "environment": "Desktop"},
                    ],
                },
                {"name": "signal-desktop"},
            ],
        },
        existing=[
            "token8r-0001-signal%2Ddesktop-latest",
            "token8r-0001-signal-desktop%2Dlatest",
        ],
    )

    manager.process(["signal"])

    assert pats.deleted == ["token8r-0001-signal-desktop%2Dlatest"], (
        "signal/desktop-latest must leave signal-desktop/latest's token in place"
    )


def test_token_without_value_is_rejected_before_approval() -> None:
    manager, journal, secrets, pats = _make_manager()
    pats.blank_tokens = True

    with pytest.raises(TokenatorError, match="was created without a value"):
        manager.process()

    assert not any(event[0] == "approve" for event in journal.events), "nothing is approved"
    assert ("sample-app", "Candidate Branch", "SNAPCRAFTERS_BOT_COMMIT") not in secrets.values
