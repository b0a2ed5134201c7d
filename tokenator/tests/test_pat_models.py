"""Unit tests for structured personal access token names."""

from __future__ import annotations

import pytest

from tokenator._pat_models import (
    PersonalToken,
    TokenName,
    escape_field,
    generate_run_id,
    unescape_field,
)


def test_generate_run_id_hashes_unix_seconds() -> None:
    assert generate_run_id(0) == "5fec"
    assert generate_run_id(0.9) == "5fec", "fractions of a second are ignored"
    assert len(generate_run_id()) == 4


def test_token_name_orders_prefix_run_id_repo_track() -> None:
    name = TokenName(run_id="1a2b", repo="sample-app", track="latest")

    assert str(name) == "token8r-1a2b-sample%2Dapp-latest"


@pytest.mark.parametrize(
    ("repo", "track"),
    [
        ("sample-app", "latest"),
        ("signal", "desktop-latest"),
        ("100%-app", "5.2"),
        ("a--b", "-"),
    ],
)
def test_parse_recovers_repo_and_track(repo: str, track: str) -> None:
    parsed = TokenName.parse(str(TokenName(run_id="1a2b", repo=repo, track=track)))

    assert parsed == TokenName(run_id="1a2b", repo=repo, track=track)


def test_hyphenated_fields_do_not_collide() -> None:
    signal_desktop = str(TokenName(run_id="1a2b", repo="signal-desktop", track="latest"))
    signal = str(TokenName(run_id="1a2b", repo="signal", track="desktop-latest"))

    assert signal_desktop != signal
    parsed = TokenName.parse(signal_desktop)
    assert parsed is not None
    assert not parsed.belongs_to("signal", "desktop-latest"), (
        "signal/desktop-latest must not claim signal-desktop/latest's token"
    )


@pytest.mark.parametrize(
    ("repo", "track"),
    [
        ("sample-app2", "latest"),
        ("app", "latest"),
        ("sample-app", "latest2"),
        ("sample", "app-latest"),
    ],
)
def test_belongs_to_compares_both_fields_exactly(repo: str, track: str) -> None:
    parsed = TokenName.parse("token8r-1a2b-sample%2Dapp-latest")

    assert parsed is not None
    assert not parsed.belongs_to(repo, track), f"{repo}/{track} must not claim the token"


@pytest.mark.parametrize(
    "name",
    [
        "my-own-token",
        "token8r-XYZW-sample%2Dapp-latest",
        "token8r-1a2-sample%2Dapp-latest",
        "token8r-1a2b-",
        "token8r-1a2b-sample-app-latest",
        "prefix-token8r-1a2b-sample%2Dapp-latest",
    ],
)
def test_parse_ignores_foreign_names(name: str) -> None:
    assert TokenName.parse(name) is None
    assert PersonalToken(id="1", name=name).structured_name is None


def test_field_escaping_removes_separators() -> None:
    escaped = escape_field("signal-desktop%")

    assert "-" not in escaped
    assert unescape_field(escaped) == "signal-desktop%"
    assert unescape_field("signal%2ddesktop") == "signal-desktop"


def test_personal_token_hides_secret_values() -> None:
    token = PersonalToken(id="9", name="token8r-1a2b-a-b", token="github_pat_x", delete_token="dt")

    assert "github_pat_x" not in repr(token)
    assert "'dt'" not in repr(token)
