"""Personal access token management through GitHub's web session.

The client logs in as the bot account the way a browser would, keeps the
session cookies for its lifetime, and lists, creates and deletes
fine-grained personal access tokens by submitting the settings forms. Page
structure is delegated to a :class:`TokenSettingsForms` implementation.

The authenticated session is owned by one client instance. The only
concurrent use is the read-only page fetches made by :meth:`list`.
"""

from __future__ import annotations

import datetime as dt
import enum
import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import requests

from tokenator._config import LoginCredentials
from tokenator._errors import AuthenticationError, UpstreamProtocolError
from tokenator._http import expect_ok, send
from tokenator._pat_forms import FormFields, GitHubTokenSettingsForms, TokenSettingsForms
from tokenator._pat_models import PersonalToken

logger = logging.getLogger(__name__)

MAX_PAGE_WORKERS = 8
TOKEN_LIFETIME_DAYS = 365


class SessionState(enum.Enum):
    """Login state of the web session."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


def one_year_from(today: dt.date) -> dt.date:
    """Return the same calendar day next year, clamping 29 February.

    Examples
    --------
    >>> one_year_from(dt.date(2024, 2, 29))
    datetime.date(2025, 2, 28)
    """

    try:
        return today.replace(year=today.year + 1)
    except ValueError:
        return today.replace(year=today.year + 1, day=28)


@dataclass(slots=True)
class PersonalTokenClient:
    """Create, list and delete personal access tokens for a GitHub account."""

    credentials: LoginCredentials
    forms: TokenSettingsForms = field(default_factory=GitHubTokenSettingsForms)
    session: requests.Session = field(default_factory=requests.Session, repr=False)
    state: SessionState = field(default=SessionState.ANONYMOUS, init=False)

    def list(self, name_filter: str = "") -> list[PersonalToken]:
        """Return every token whose name contains ``name_filter``.

        The first page reports the page count; the remaining pages are
        fetched concurrently. Results carry no ordering across pages.
        """

        self.login()
        first_page = self._get_page(
            self.forms.list_url(1), "failed to get personal access tokens page 1"
        )
        tokens = self._matching(first_page, name_filter)

        remaining = range(2, self.forms.page_count(first_page) + 1)
        if not remaining:
            return tokens

        def fetch(page: int) -> list[PersonalToken]:
            html = self._get_page(
                self.forms.list_url(page),
                f"failed to get personal access tokens page {page}",
            )
            return self._matching(html, name_filter)

        with ThreadPoolExecutor(max_workers=min(MAX_PAGE_WORKERS, len(remaining))) as pool:
            for page_tokens in pool.map(fetch, remaining):
                tokens.extend(page_tokens)
        return tokens

    def create(
        self,
        name: str,
        repos: Sequence[str],
        owner: str,
        today: dt.date | None = None,
    ) -> PersonalToken:
        """Create a token scoped to ``repos`` (``owner/name`` strings) for ``owner``.

        Tokens get contents read/write and metadata read access and expire one
        year from today. Creation raises an approval request in the owning
        organization which must be approved before the token works.
        """

        self.login()
        form_page = self._get_page(
            self.forms.new_token_url, "failed to get the personal access token form"
        )
        authenticity_token = self.forms.creation_authenticity_token(form_page)

        repository_ids = [self.repository_id(repo) for repo in repos]

        expires_on = one_year_from(today or dt.date.today())
        fields = self.forms.creation_fields(
            authenticity_token, name, owner, repository_ids, expires_on
        )
        result = self._post_form(
            self.forms.create_url, fields, "failed to POST personal access token form"
        )
        token = self.forms.parse_created_token(result, name)
        logger.debug("created personal access token %s (id %s)", token.name, token.id)
        return token

    def delete(self, token: PersonalToken) -> None:
        """Delete ``token`` after re-checking that the session is still valid."""

        self.login(recheck=True)
        self._post_form(
            self.forms.delete_url(token.id),
            self.forms.deletion_fields(token),
            f"error deleting personal access token {token.name}",
        )
        logger.debug("deleted personal access token %s (id %s)", token.name, token.id)

    def repository_id(self, full_name: str) -> str:
        """Resolve ``owner/repo`` to the numeric id used by the token form."""

        owner, sep, repo = full_name.partition("/")
        if not sep or not owner or not repo:
            msg = f"repository {full_name!r} must be given as 'owner/name'"
            raise UpstreamProtocolError(msg)

        step = f"failed to get repo ID for {full_name}"
        response = expect_ok(
            send(
                self.session,
                "GET",
                self.forms.suggestions_url,
                step=step,
                params=self.forms.suggestion_params(owner, repo),
                headers={"Accept": "text/fragment+html"},
            ),
            step,
        )
        repo_id = self.forms.repository_id(response.text, repo)
        if not repo_id:
            msg = f"{step}: failed to find repository id for {owner}/{repo}"
            raise UpstreamProtocolError(msg)
        return repo_id

    def login(self, *, recheck: bool = False) -> None:
        """Ensure the session is authenticated, logging in when required."""

        if self.state is SessionState.AUTHENTICATED and not recheck:
            return

        step = "failed to detect Github session login status"
        probe = expect_ok(
            send(self.session, "HEAD", self.forms.settings_url, step=step, allow_redirects=True),
            step,
        )
        if not self.forms.is_login_page(probe.url):
            self.state = SessionState.AUTHENTICATED
            return

        self.state = SessionState.AUTHENTICATING
        try:
            self._submit_login()
        except Exception:
            self.state = SessionState.ANONYMOUS
            raise
        self.state = SessionState.AUTHENTICATED
        logger.debug("logged in to GitHub as %s", self.credentials.login)

    def _submit_login(self) -> None:
        login_page = self._get_page(self.forms.login_url, "failed to parse Github login page")
        fields = self.forms.login_fields(
            login_page, self.credentials.login, self.credentials.password
        )
        result = self._post_form(
            self.forms.session_url, fields, "failed to parse Github login form response"
        )
        error = self.forms.login_error(result)
        if error:
            raise AuthenticationError(error)

    def _matching(self, html: str, name_filter: str) -> list[PersonalToken]:
        return [token for token in self.forms.parse_tokens(html) if name_filter in token.name]

    def _get_page(self, url: str, step: str) -> str:
        return expect_ok(send(self.session, "GET", url, step=step), step).text

    def _post_form(self, url: str, fields: FormFields, step: str) -> str:
        return expect_ok(send(self.session, "POST", url, step=step, data=fields), step).text


__all__ = ["PersonalTokenClient", "SessionState", "one_year_from"]
