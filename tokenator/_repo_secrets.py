"""Environment secrets for repositories in the managed organization.

Secrets are written into GitHub Actions environments rather than the
repository itself, so that only the branch mapped to a track can read them.
Environments are created on demand with a custom deployment branch policy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http import HTTPStatus
from urllib.parse import quote

from tokenator._config import Track
from tokenator._errors import RepositoryNotFoundError, UpstreamProtocolError
from tokenator._github_rest import GitHubRestClient
from tokenator._http import expect_ok, json_body
from tokenator._sealed_secret import EncryptedSecret, encrypt_secret

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(value, safe="")


@dataclass(slots=True)
class RepoSecretClient:
    """Create environments and upload sealed secrets for ``org`` repositories."""

    rest: GitHubRestClient
    org: str

    def set_environment_secret(self, repo: str, track: Track, name: str, value: str) -> None:
        """Set secret ``name`` in the environment of ``track``, creating it if absent."""

        repo_id = self._repository_id(repo)
        self.ensure_environment(repo, track)
        secret = self._encrypt(repo_id, track.environment, name, value)
        self.rest.call(
            "PUT",
            f"/repositories/{repo_id}/environments/{_segment(track.environment)}"
            f"/secrets/{_segment(secret.name)}",
            step=f"failed to set {name} in environment {track.environment!r}",
            json=secret.to_payload(),
        )

    def ensure_environment(self, repo: str, track: Track) -> None:
        """Fetch the track's environment and create it when it does not exist."""

        step = f"failed to get environment {track.environment!r}"
        response = self.rest.request(
            "GET",
            f"/repos/{self.org}/{repo}/environments/{_segment(track.environment)}",
            step=step,
        )
        if response.status_code == HTTPStatus.NOT_FOUND:
            self.create_environment(repo, track)
            return
        expect_ok(response, step)

    def create_environment(self, repo: str, track: Track) -> None:
        """Create the environment restricted to the track's branch."""

        env_path = f"/repos/{self.org}/{repo}/environments/{_segment(track.environment)}"
        self.rest.call(
            "PUT",
            env_path,
            step=f"failed to create environment {track.environment!r}",
            json={
                "can_admins_bypass": True,
                "prevent_self_review": True,
                "deployment_branch_policy": {
                    "protected_branches": False,
                    "custom_branch_policies": True,
                },
            },
        )
        self.rest.call(
            "POST",
            f"{env_path}/deployment-branch-policies",
            step=f"failed to create branch policy for environment {track.environment!r}",
            json={"name": track.branch},
        )
        logger.debug(
            "created environment %r for %s/%s on branch %s",
            track.environment,
            self.org,
            repo,
            track.branch,
        )

    def _repository_id(self, repo: str) -> int:
        step = f"failed to get repository {self.org}/{repo}"
        response = self.rest.request("GET", f"/repos/{self.org}/{repo}", step=step)
        if response.status_code == HTTPStatus.NOT_FOUND:
            msg = f"{step}: repository does not exist"
            raise RepositoryNotFoundError(msg)
        body = json_body(expect_ok(response, step), step)
        repo_id = body.get("id") if isinstance(body, dict) else None
        if not isinstance(repo_id, int):
            msg = f"{step}: no 'id' found in response json"
            raise UpstreamProtocolError(msg)
        return repo_id

    def _encrypt(self, repo_id: int, environment: str, name: str, value: str) -> EncryptedSecret:
        step = f"failed to get public key for environment {environment!r}"
        key = self.rest.call(
            "GET",
            f"/repositories/{repo_id}/environments/{_segment(environment)}/secrets/public-key",
            step=step,
        )
        if not isinstance(key, dict) or not key.get("key") or not key.get("key_id"):
            msg = f"{step}: response is missing 'key' or 'key_id'"
            raise UpstreamProtocolError(msg)
        return encrypt_secret(name, str(key["key_id"]), key["key"], value)


__all__ = ["RepoSecretClient"]
