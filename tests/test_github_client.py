import json
from unittest.mock import Mock

import pytest
import requests

from forkrelink.github_client import GitHubClient, GitHubError
from forkrelink.urls import RepoRef

REPO_PAYLOAD = {
    "name": "vertical",
    "owner": {"login": "alice"},
    "html_url": "https://github.com/alice/vertical",
    "clone_url": "https://github.com/alice/vertical.git",
    "ssh_url": "git@github.com:alice/vertical.git",
    "default_branch": "develop",
}


def make_response(status_code: int, payload=None, text: str = "") -> Mock:
    response = Mock()
    response.status_code = status_code
    if payload is not None:
        body = json.dumps(payload)
        response.json.return_value = payload
    else:
        body = text
        response.json.side_effect = ValueError("no json")
    response.text = body
    response.content = body.encode("utf-8")
    return response


@pytest.fixture
def request_mock(monkeypatch) -> Mock:
    mock = Mock()
    monkeypatch.setattr("forkrelink.github_client.requests.request", mock)
    return mock


@pytest.fixture
def client() -> GitHubClient:
    return GitHubClient("t0ken", api_base="https://api.example.com/")


def test_requires_token() -> None:
    with pytest.raises(GitHubError):
        GitHubClient("  ")


def test_headers_and_viewer_login(client, request_mock) -> None:
    request_mock.return_value = make_response(200, {"login": "alice"})

    assert client.get_viewer_login() == "alice"

    method, url = request_mock.call_args.args
    headers = request_mock.call_args.kwargs["headers"]
    assert (method, url) == ("GET", "https://api.example.com/user")
    assert headers["Authorization"] == "Bearer t0ken"
    assert headers["X-GitHub-Api-Version"] == "2022-11-28"


def test_error_carries_status_and_message(client, request_mock) -> None:
    request_mock.return_value = make_response(422, {"message": "Reference already exists"})

    with pytest.raises(GitHubError) as info:
        client.create_ref(RepoRef("acme", "vertical"), "refs/heads/instance/alice", "abc")

    assert info.value.status_code == 422
    assert "Reference already exists" in str(info.value)
    assert request_mock.call_args.kwargs["json"] == {"ref": "refs/heads/instance/alice", "sha": "abc"}


def test_non_json_error_body(client, request_mock) -> None:
    request_mock.return_value = make_response(502, text="Bad Gateway")

    with pytest.raises(GitHubError, match="Bad Gateway"):
        client.get_viewer_login()


def test_transport_error_is_wrapped(client, request_mock) -> None:
    request_mock.side_effect = requests.ConnectionError("boom")

    with pytest.raises(GitHubError, match="request failed"):
        client.get_viewer_login()


@pytest.mark.parametrize(
    "permission, expected",
    [("admin", "admin"), ("write", "write"), ("read", "read"), ("none", "none"), ("weird", "none")],
)
def test_get_permission(client, request_mock, permission, expected) -> None:
    request_mock.return_value = make_response(200, {"permission": permission})

    assert client.get_permission(RepoRef("acme", "vertical"), "alice") == expected
    assert request_mock.call_args.args[1].endswith("/repos/acme/vertical/collaborators/alice/permission")


def test_get_repo_and_can_view(client, request_mock) -> None:
    request_mock.return_value = make_response(200, REPO_PAYLOAD)
    info = client.get_repo(RepoRef("alice", "vertical"))
    assert info.default_branch == "develop"
    assert info.ref == RepoRef("alice", "vertical")
    assert client.can_view(RepoRef("alice", "vertical"))

    request_mock.return_value = make_response(404, {"message": "Not Found"})
    assert client.get_repo(RepoRef("acme", "secret")) is None
    assert client.can_view(RepoRef("acme", "secret")) is False


def test_can_view_server_error_is_not_viewable(client, request_mock) -> None:
    request_mock.return_value = make_response(500, {"message": "oops"})
    assert client.can_view(RepoRef("acme", "vertical")) is False


def test_fork_and_rename(client, request_mock) -> None:
    request_mock.return_value = make_response(202, REPO_PAYLOAD)
    forked = client.fork_repo(RepoRef("acme", "vertical"))
    assert (forked.owner, forked.name) == ("alice", "vertical")
    assert request_mock.call_args.args == ("POST", "https://api.example.com/repos/acme/vertical/forks")

    request_mock.return_value = make_response(200, dict(REPO_PAYLOAD, name="vertical-fork-abcd1234"))
    renamed = client.rename_repo(forked.ref, "vertical-fork-abcd1234")
    assert renamed.name == "vertical-fork-abcd1234"
    assert request_mock.call_args.args == ("PATCH", "https://api.example.com/repos/alice/vertical")
    assert request_mock.call_args.kwargs["json"] == {"name": "vertical-fork-abcd1234"}


def test_get_branch_sha(client, request_mock) -> None:
    request_mock.return_value = make_response(200, {"ref": "refs/heads/main", "object": {"sha": "deadbeef"}})
    assert client.get_branch_sha(RepoRef("acme", "vertical"), "main") == "deadbeef"
    assert request_mock.call_args.args[1].endswith("/repos/acme/vertical/git/ref/heads/main")
