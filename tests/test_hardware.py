from unittest import mock

import requests

from ecopulse.hardware import (
    CommandResult,
    DeviceLink,
    LinkStatus,
    probe,
    probe_url,
    relay_url,
    send_relay_command,
)


def test_urls():
    assert relay_url("192.168.1.50", True) == "http://192.168.1.50/relay?state=1"
    assert relay_url(" 192.168.1.50 ", False) == "http://192.168.1.50/relay?state=0"
    assert probe_url("esp.local") == "http://esp.local/"


@mock.patch("ecopulse.hardware.requests.get")
def test_relay_success_ignores_status(mock_get):
    mock_get.return_value = mock.Mock(status_code=500)
    assert send_relay_command("10.0.0.2", True) == CommandResult.SUCCESS
    mock_get.assert_called_once_with("http://10.0.0.2/relay?state=1", timeout=2.0)


@mock.patch("ecopulse.hardware.requests.get", side_effect=requests.Timeout)
def test_relay_timeout(mock_get):
    assert send_relay_command("10.0.0.2", False) == CommandResult.TIMEOUT


@mock.patch("ecopulse.hardware.requests.get", side_effect=requests.ConnectionError)
def test_relay_failure(mock_get):
    assert send_relay_command("10.0.0.2", False) == CommandResult.FAILURE


@mock.patch("ecopulse.hardware.requests.get")
def test_relay_without_address_sends_nothing(mock_get):
    assert send_relay_command("", True) == CommandResult.FAILURE
    mock_get.assert_not_called()


@mock.patch("ecopulse.hardware.requests.get")
def test_probe_connected(mock_get):
    assert probe("10.0.0.2") == LinkStatus.CONNECTED
    mock_get.assert_called_once_with("http://10.0.0.2/", timeout=3.0)


@mock.patch("ecopulse.hardware.requests.get", side_effect=requests.ConnectTimeout)
def test_probe_offline_without_retry(mock_get):
    assert probe("10.0.0.2") == LinkStatus.OFFLINE
    assert mock_get.call_count == 1


@mock.patch("ecopulse.hardware.requests.get", side_effect=requests.exceptions.InvalidURL)
def test_probe_invalid_address(mock_get):
    assert probe("bad address") == LinkStatus.ERROR


@mock.patch("ecopulse.hardware.requests.get")
def test_probe_idle_without_address(mock_get):
    assert probe(None) == LinkStatus.IDLE
    assert probe("  ") == LinkStatus.IDLE
    mock_get.assert_not_called()


@mock.patch("ecopulse.hardware.requests.get")
def test_device_link_sends_in_background(mock_get):
    with DeviceLink("10.0.0.2") as link:
        first = link.send_relay_async(True)
        second = link.send_relay_async(False, address="10.0.0.3")
        assert first.result(timeout=5) == CommandResult.SUCCESS
        assert second.result(timeout=5) == CommandResult.SUCCESS
    urls = [call.args[0] for call in mock_get.call_args_list]
    assert urls == ["http://10.0.0.2/relay?state=1", "http://10.0.0.3/relay?state=0"]
