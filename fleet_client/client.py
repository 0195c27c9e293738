from typing import Any

import requests

DEFAULT_SERVER_URL = "http://localhost:8000"


def _request(
    method: str, server_url: str, path: str, json: dict | None = None, timeout: int = 30
) -> dict[str, Any]:
    """Send a request to the scheduler API and return the decoded JSON body."""
    try:
        response = requests.request(
            method, f"{server_url}{path}", json=json, timeout=timeout
        )
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error contacting scheduler: {e}")

    if response.status_code >= 400:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        raise RuntimeError(f"Scheduler returned {response.status_code}: {detail}")

    return response.json()


def get_status(server_url: str = DEFAULT_SERVER_URL) -> dict[str, Any]:
    """
    Get the active builds and queued requests.

    Returns:
        dict with "max_jobs", "active", "queued" and "polling" keys

    Raises:
        RuntimeError: If the request fails
    """
    return _request("GET", server_url, "/jobs")


def trigger_run(server_url: str = DEFAULT_SERVER_URL) -> list[str]:
    """
    Trigger one polling cycle.

    Polling fetches every eligible target, so the call can take a while.

    Returns:
        Ids of the targets submitted for a build
    """
    return _request("POST", server_url, "/run", timeout=300)["submitted"]


def request_build(
    target_id: str,
    server_url: str = DEFAULT_SERVER_URL,
    fetch_repo: bool = False,
    skip_cdn: bool = False,
    skip_notifier: bool = False,
    map_switch: str | None = None,
) -> str:
    """
    Request a build of a target.

    Returns:
        Admission outcome ("started", "queued" or "dropped")

    Raises:
        RuntimeError: If the request is refused or fails
    """
    body = {
        "fetch_repo": fetch_repo,
        "skip_cdn": skip_cdn,
        "skip_notifier": skip_notifier,
        "map_switch": map_switch or False,
    }
    return _request("POST", server_url, f"/targets/{target_id}/build", json=body)[
        "outcome"
    ]


def cancel_build(target_id: str, server_url: str = DEFAULT_SERVER_URL) -> None:
    """Cancel the running build of a target."""
    _request("POST", server_url, f"/targets/{target_id}/cancel")


def get_branch(target_id: str, server_url: str = DEFAULT_SERVER_URL) -> str:
    """Return the branch checked out for a target."""
    return _request("GET", server_url, f"/targets/{target_id}/branch")["branch"]


def switch_branch(
    target_id: str, branch: str, server_url: str = DEFAULT_SERVER_URL
) -> None:
    """Check out another branch for a target."""
    _request(
        "POST",
        server_url,
        f"/targets/{target_id}/branch",
        json={"branch": branch},
        timeout=300,
    )


def set_map(
    target_id: str, map_name: str, build: bool = False, server_url: str = DEFAULT_SERVER_URL
) -> dict[str, Any]:
    """Set the map override of a target, optionally building it right away."""
    return _request(
        "POST",
        server_url,
        f"/targets/{target_id}/map",
        json={"map": map_name, "build": build},
    )
