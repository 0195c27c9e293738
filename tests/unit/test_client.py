"""
Unit tests for fleet_client.client module.

Tests the HTTP client functions against a mocked requests layer.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from fleet_client.client import (
    cancel_build,
    get_branch,
    get_status,
    request_build,
    set_map,
    switch_branch,
    trigger_run,
)

SERVER = "http://scheduler.local:8000"


def json_response(data, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = data
    response.text = str(data)
    return response


class TestRequests:
    """Test suite for the API client functions."""

    def test_get_status(self):
        state = {"max_jobs": 2, "active": [], "queued": [], "polling": True}

        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.return_value = json_response(state)
            result = get_status(SERVER)

        assert result == state
        mock_request.assert_called_once_with(
            "GET", f"{SERVER}/jobs", json=None, timeout=30
        )

    def test_trigger_run(self):
        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.return_value = json_response({"submitted": ["main"]})

            assert trigger_run(SERVER) == ["main"]

    def test_request_build_sends_options(self):
        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.return_value = json_response(
                {"target_id": "main", "outcome": "queued"}
            )
            outcome = request_build("main", SERVER, fetch_repo=True, map_switch="Donut")

        assert outcome == "queued"
        args, kwargs = mock_request.call_args
        assert args == ("POST", f"{SERVER}/targets/main/build")
        assert kwargs["json"] == {
            "fetch_repo": True,
            "skip_cdn": False,
            "skip_notifier": False,
            "map_switch": "Donut",
        }

    def test_request_build_without_map_switch(self):
        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.return_value = json_response({"outcome": "started"})
            request_build("main", SERVER)

        assert mock_request.call_args.kwargs["json"]["map_switch"] is False

    def test_refused_request_raises_detail(self):
        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.return_value = json_response(
                {"detail": "Build for main refused, try again later"}, status_code=409
            )

            with pytest.raises(RuntimeError, match="409: Build for main refused"):
                request_build("main", SERVER)

    def test_error_without_json_body(self):
        response = Mock(status_code=502, text="Bad Gateway")
        response.json.side_effect = ValueError("no json")

        with patch("fleet_client.client.requests.request", return_value=response):
            with pytest.raises(RuntimeError, match="Bad Gateway"):
                cancel_build("main", SERVER)

    def test_connection_error(self):
        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.side_effect = requests.exceptions.ConnectionError("refused")

            with pytest.raises(RuntimeError, match="Error contacting scheduler"):
                get_status(SERVER)

    def test_branch_calls(self):
        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.return_value = json_response(
                {"target_id": "main", "branch": "master"}
            )
            assert get_branch("main", SERVER) == "master"

            switch_branch("main", "feature", SERVER)

        args, kwargs = mock_request.call_args
        assert args == ("POST", f"{SERVER}/targets/main/branch")
        assert kwargs["json"] == {"branch": "feature"}

    def test_set_map(self):
        with patch("fleet_client.client.requests.request") as mock_request:
            mock_request.return_value = json_response(
                {"target_id": "main", "map": "BOX", "outcome": "started"}
            )
            result = set_map("main", "box", build=True, server_url=SERVER)

        assert result["outcome"] == "started"
        assert mock_request.call_args.kwargs["json"] == {"map": "box", "build": True}
