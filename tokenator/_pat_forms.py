"""Translation layer between the token client and GitHub's settings pages.

GitHub has no API for creating fine-grained personal access tokens, so the
client drives the same HTML forms a person would. Every URL, form field and
CSS selector lives here, behind the :class:`TokenSettingsForms` protocol;
when the settings UI changes, only this module needs to follow it.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from typing import Protocol
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from tokenator._errors import TokenCreationError, UpstreamProtocolError
from tokenator._pat_models import PersonalToken

GITHUB_URL = "https://github.com"

type FormFields = list[tuple[str, str]]


class TokenSettingsForms(Protocol):
    """Session-driven form protocol for personal access token management."""

    settings_url: str
    login_url: str
    session_url: str
    new_token_url: str
    create_url: str
    suggestions_url: str

    def list_url(self, page: int) -> str: ...

    def delete_url(self, token_id: str) -> str: ...

    def is_login_page(self, url: str) -> bool: ...

    def login_fields(self, html: str, login: str, password: str) -> FormFields: ...

    def login_error(self, html: str) -> str | None: ...

    def page_count(self, html: str) -> int: ...

    def parse_tokens(self, html: str) -> list[PersonalToken]: ...

    def creation_authenticity_token(self, html: str) -> str: ...

    def suggestion_params(self, owner: str, repo: str) -> dict[str, str]: ...

    def repository_id(self, html: str, repo: str) -> str | None: ...

    def creation_fields(
        self,
        authenticity_token: str,
        name: str,
        owner: str,
        repository_ids: Sequence[str],
        expires_on: dt.date,
    ) -> FormFields: ...

    def parse_created_token(self, html: str, name: str) -> PersonalToken: ...

    def deletion_fields(self, token: PersonalToken) -> FormFields: ...


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _attr(tag: Tag | None, name: str) -> str | None:
    if tag is None:
        return None
    value = tag.get(name)
    if value is None:
        return None
    return value if isinstance(value, str) else " ".join(value)


def _banner_text(soup: BeautifulSoup, selector: str) -> str | None:
    texts = [element.get_text(" ", strip=True) for element in soup.select(selector)]
    text = " ".join(part for part in texts if part)
    return text.lower() or None


class GitHubTokenSettingsForms:
    """Forms and selectors of github.com's fine-grained token settings."""

    def __init__(self, base_url: str = GITHUB_URL) -> None:
        self.base_url = base_url.rstrip("/")
        self.settings_url = f"{self.base_url}/settings/"
        self.login_url = f"{self.base_url}/login"
        self.session_url = f"{self.base_url}/session"
        self.new_token_url = f"{self.base_url}/settings/personal-access-tokens/new"
        self.create_url = f"{self.base_url}/settings/personal-access-tokens"
        self.suggestions_url = f"{self.base_url}/settings/personal-access-tokens/suggestions"

    def list_url(self, page: int) -> str:
        return f"{self.base_url}/settings/tokens?page={page}&type=beta"

    def delete_url(self, token_id: str) -> str:
        return f"{self.base_url}/settings/personal-access-tokens/{token_id}"

    def is_login_page(self, url: str) -> bool:
        return urlparse(url).path.rstrip("/") == "/login"

    def login_fields(self, html: str, login: str, password: str) -> FormFields:
        """Copy the login form's hidden inputs and add the credentials."""

        soup = _soup(html)
        inputs = soup.select("form[action='/session'] input[type='hidden']")
        if not inputs:
            inputs = soup.select("form input[type='hidden']")
        fields = {
            name: _attr(element, "value") or ""
            for element in inputs
            if (name := _attr(element, "name"))
        }
        fields["login"] = login
        fields["password"] = password
        return list(fields.items())

    def login_error(self, html: str) -> str | None:
        return _banner_text(_soup(html), ".flash-full.flash-error")

    def page_count(self, html: str) -> int:
        """Return the number of token list pages, defaulting to one."""

        current = _soup(html).select_one(".pagination > .current")
        raw = _attr(current, "data-total-pages") or "1"
        try:
            return max(int(raw), 1)
        except ValueError:
            return 1

    def parse_tokens(self, html: str) -> list[PersonalToken]:
        tokens: list[PersonalToken] = []
        for element in _soup(html).select(".access-token"):
            link = element.find("a")
            delete_input = element.select_one("input[name=authenticity_token]")
            tokens.append(
                PersonalToken(
                    id=_attr(element, "data-id") or "",
                    name=link.get_text(strip=True) if link is not None else "",
                    delete_token=_attr(delete_input, "value") or "",
                )
            )
        return tokens

    def creation_authenticity_token(self, html: str) -> str:
        element = _soup(html).select_one(
            "#new_user_programmatic_access input[name=authenticity_token]"
        )
        value = _attr(element, "value")
        if not value:
            msg = "failed to identify authenticity token on personal access token form"
            raise UpstreamProtocolError(msg)
        return value

    def suggestion_params(self, owner: str, repo: str) -> dict[str, str]:
        return {"target_name": owner, "q": repo}

    def repository_id(self, html: str, repo: str) -> str | None:
        """Return the id carried by the suggestion's "Remove <repo>" button."""

        element = _soup(html).find(attrs={"aria-label": f"Remove {repo}"})
        return _attr(element if isinstance(element, Tag) else None, "value")

    def creation_fields(
        self,
        authenticity_token: str,
        name: str,
        owner: str,
        repository_ids: Sequence[str],
        expires_on: dt.date,
    ) -> FormFields:
        fields: FormFields = [
            ("authenticity_token", authenticity_token),
            ("user_programmatic_access[name]", name),
            ("user_programmatic_access[default_expires_at]", "custom"),
            ("user_programmatic_access[custom_expires_at]", expires_on.isoformat()),
            ("user_programmatic_access[description]", ""),
            ("target_name", owner),
            ("install_target", "selected"),
            ("integration[default_permissions][contents]", "write"),
            ("integration[default_permissions][metadata]", "read"),
        ]
        fields.extend(("repository_ids[]", repo_id) for repo_id in repository_ids)
        return fields

    def parse_created_token(self, html: str, name: str) -> PersonalToken:
        """Extract the one-time secret, id and delete token from the result page."""

        soup = _soup(html)
        element = soup.select_one(".access-token")
        value = _attr(
            element.select_one("#new-access-token") if element is not None else None,
            "value",
        )
        if element is None or not value:
            msg = _banner_text(soup, ".error, .flash-error.flash-full") or (
                "personal access token was not created"
            )
            raise TokenCreationError(msg)

        token_id = _attr(element, "data-id")
        if not token_id:
            msg = "failed to retrieve ID of new personal access token"
            raise UpstreamProtocolError(msg)
        delete_token = _attr(element.select_one("input[name=authenticity_token]"), "value")
        if not delete_token:
            msg = "failed to retrieve delete token for new personal access token"
            raise UpstreamProtocolError(msg)

        return PersonalToken(id=token_id, name=name, token=value, delete_token=delete_token)

    def deletion_fields(self, token: PersonalToken) -> FormFields:
        return [("_method", "delete"), ("authenticity_token", token.delete_token)]


__all__ = ["GITHUB_URL", "FormFields", "GitHubTokenSettingsForms", "TokenSettingsForms"]
