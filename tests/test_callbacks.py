import json
from contextvars import copy_context
from unittest import mock

import numpy as np
import pytest
from dash._callback_context import context_value
from dash._utils import AttributeDict
from dash.exceptions import PreventUpdate

import app as dashboard
from ecopulse.config import DEFAULT_VOLTAGE_LIMIT, SESSION_KEY
from ecopulse.hardware import LinkStatus
from ecopulse.models.appliance import default_nodes, nodes_from_records, nodes_to_records
from ecopulse.simulator import add, advance


def triggered_by(prop_id, value, func, *args):
    """Call a callback as if Dash had fired it from `prop_id`."""
    def run():
        context_value.set(AttributeDict(triggered_inputs=[{"prop_id": prop_id, "value": value}]))
        return func(*args)
    return copy_context().run(run)


def button(kind, node_id):
    return json.dumps({"index": node_id, "type": kind}) + ".n_clicks"


def run_update_nodes(prop_id, value, records=None, voltage_limit=DEFAULT_VOLTAGE_LIMIT,
                     new_name=None, new_kind="lightbulb", device_address="10.0.0.2",
                     prediction=None, session=None):
    if records is None:
        records = nodes_to_records(default_nodes())
    return nodes_from_records(triggered_by(
        prop_id, value, dashboard.update_nodes,
        1, [], [], None, prediction, session,
        records, voltage_limit, new_name, new_kind, device_address,
    ))


def with_fan():
    records = nodes_to_records(add(default_nodes(), "Fan", "fan"))
    return records, records[-1]["id"]


def with_history(ticks=6):
    nodes = default_nodes()
    rng = np.random.default_rng(2)
    for _ in range(ticks):
        nodes = advance(nodes, 230, rng)
    return nodes_to_records(nodes)


# --- update_nodes ---

def test_toggle_lightbulb_sends_relay_command():
    with mock.patch.object(dashboard, "device_link") as link:
        nodes = run_update_nodes(button("toggle-btn", "bulb-01"), 1)
    assert nodes[0].is_on is False
    link.send_relay_async.assert_called_once_with(False, address="10.0.0.2")


def test_toggle_fan_sends_nothing():
    records, fan_id = with_fan()
    with mock.patch.object(dashboard, "device_link") as link:
        nodes = run_update_nodes(button("toggle-btn", fan_id), 1, records=records)
    assert nodes[1].is_on is True
    link.send_relay_async.assert_not_called()


def test_toggle_without_device_address_sends_nothing():
    with mock.patch.object(dashboard, "device_link") as link:
        nodes = run_update_nodes(button("toggle-btn", "bulb-01"), 1, device_address="")
    assert nodes[0].is_on is False
    link.send_relay_async.assert_not_called()


def test_rerendered_buttons_do_not_toggle():
    with mock.patch.object(dashboard, "device_link") as link:
        with pytest.raises(PreventUpdate):
            run_update_nodes(button("toggle-btn", "bulb-01"), None)
        with pytest.raises(PreventUpdate):
            run_update_nodes(button("delete-btn", "bulb-01"), None)
    link.send_relay_async.assert_not_called()


def test_tick_respects_voltage_limit():
    nodes = run_update_nodes("tick.n_intervals", 1, voltage_limit=120)
    assert nodes[0].current_voltage == 120
    assert len(nodes[0].history) == 1


def test_add_and_delete_nodes():
    assert run_update_nodes("add-confirm.n_clicks", 1, new_name="   ") == default_nodes()
    nodes = run_update_nodes("add-confirm.n_clicks", 1, new_name="Heater", new_kind="heater")
    assert [n.kind for n in nodes] == ["lightbulb", "heater"]
    assert nodes[1].base_power == 1500
    nodes = run_update_nodes(button("delete-btn", nodes[1].id), 1, records=nodes_to_records(nodes))
    assert [n.id for n in nodes] == ["bulb-01"]


def test_prediction_annotates_node():
    prediction = {"id": "bulb-01", "text": "Prediction: LED bulb - 12 W", "token": "t1"}
    nodes = run_update_nodes("prediction-store.data", prediction, prediction=prediction)
    assert nodes[0].ai_prediction == "Prediction: LED bulb - 12 W"


def test_session_change_resets_nodes():
    records, _ = with_fan()
    nodes = run_update_nodes(f"{SESSION_KEY}.data", None, records=records)
    assert nodes == default_nodes()


# --- identification ---

def test_identify_requires_enough_history():
    with pytest.raises(PreventUpdate):
        triggered_by(button("identify-btn", "bulb-01"), 1, dashboard.request_identify,
                     [1], with_history(3), None, None)


def test_identify_round_trip_marks_node_busy_until_answered():
    records = with_history()
    request = triggered_by(button("identify-btn", "bulb-01"), 1, dashboard.request_identify,
                           [1], records, None, None)
    assert request["id"] == "bulb-01"
    assert dashboard.identifying_node_id(request, None) == "bulb-01"

    # A second click while the first is pending is ignored
    with pytest.raises(PreventUpdate):
        triggered_by(button("identify-btn", "bulb-01"), 2, dashboard.request_identify,
                     [2], records, request, None)

    with mock.patch.object(dashboard, "insights") as insights:
        insights.predict_device_type.return_value = "Prediction: LED bulb - low draw"
        answer = dashboard.identify_node(request, records)
    assert answer == {"id": "bulb-01", "text": "Prediction: LED bulb - low draw", "token": request["token"]}
    assert dashboard.identifying_node_id(request, answer) is None


def test_pending_identify_disables_button():
    records = with_history()
    request = {"id": "bulb-01", "token": "abc"}
    cards = dashboard.update_dashboard(records, 230, request, None)[1]
    identify_buttons = [c for c in cards[0]._traverse()
                        if getattr(c, "id", None) == {"type": "identify-btn", "index": "bulb-01"}]
    assert identify_buttons[0].disabled is True
    cards = dashboard.update_dashboard(records, 230, request, {"id": "bulb-01", "text": "x", "token": "abc"})[1]
    identify_buttons = [c for c in cards[0]._traverse()
                        if getattr(c, "id", None) == {"type": "identify-btn", "index": "bulb-01"}]
    assert identify_buttons[0].disabled is False


# --- hardware link badge ---

@pytest.mark.parametrize("status, label", [
    (LinkStatus.CONNECTED, "Hardware Linked"),
    (LinkStatus.OFFLINE, "Virtual Mode"),
    (LinkStatus.IDLE, "Virtual Mode"),
    (LinkStatus.ERROR, "Link Error"),
])
def test_check_connection_badge(status, label):
    with mock.patch.object(dashboard, "probe", return_value=status) as probe:
        badge, color, address = dashboard.check_connection("10.0.0.2")
    probe.assert_called_once_with("10.0.0.2")
    assert badge == label
    assert color == dashboard.LINK_BADGES[status][1]
    assert address == "10.0.0.2"


def test_linking_badge_hidden_until_probe_runs():
    badges = {c.id: c for c in dashboard.dashboard_view._traverse()
              if getattr(c, "id", None) in ("linking-badge", "link-badge")}
    assert badges["linking-badge"].children == "Linking"
    assert badges["linking-badge"].style == dashboard.HIDDEN
    assert badges["link-badge"].style == dashboard.INLINE
