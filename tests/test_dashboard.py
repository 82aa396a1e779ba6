import numpy as np

from app import switch_view, update_dashboard
from ecopulse.analytics import aggregate, node_share
from ecopulse.models.appliance import default_nodes, nodes_to_records
from ecopulse.simulator import add, advance
from ecopulse.visualizer import get_billing_history_fig, get_load_fig, get_node_fig, get_share_fig

import main


def simulated_nodes(ticks=6):
    nodes = add(default_nodes(), "Fan", "fan")
    rng = np.random.default_rng(11)
    for _ in range(ticks):
        nodes = advance(nodes, 230, rng)
    return nodes


def test_switch_view_logged_out():
    login_style, dashboard_style, tick_disabled, label = switch_view(None)
    assert login_style == {"display": "block"}
    assert dashboard_style == {"display": "none"}
    assert tick_disabled is True
    assert label == ""


def test_switch_view_corrupt_session_counts_as_logged_out():
    assert switch_view({"email": "x"})[2] is True


def test_switch_view_logged_in():
    login_style, dashboard_style, tick_disabled, label = switch_view(
        {"id": "1", "email": "sam@example.com", "name": "SAM"})
    assert dashboard_style == {"display": "block"}
    assert tick_disabled is False
    assert label == "SAM"


def test_update_dashboard_renders_every_node():
    nodes = simulated_nodes()
    kpis, cards, load_fig, share_fig, analyze_disabled, forecast, label = update_dashboard(
        nodes_to_records(nodes), 210)
    assert len(kpis) == 4
    assert len(cards) == 2
    assert len(load_fig.data[0].x) == 6
    assert analyze_disabled is False
    assert label == "210V"


def test_update_dashboard_without_nodes():
    result = update_dashboard([], 230)
    assert result[1] == []
    assert result[4] is True


def test_figures():
    nodes = simulated_nodes()
    metrics = aggregate(nodes)
    assert [t.name for t in get_load_fig(metrics.history).data] == ["Power", "Loss"]
    assert len(get_node_fig(nodes[0]).data[0].y) == 6
    assert list(get_share_fig(node_share(nodes)).data[0].labels) == ["Smart Light Bulb"]
    bars = get_billing_history_fig().data[0]
    assert list(bars.marker.color) == ["#10b981", "#10b981", "#ef4444", "#10b981"]


def test_headless_run(capsys):
    service = main.main(["--ticks", "25", "--seed", "5", "--add", "Desk Fan:fan"])
    nodes = service.snapshot()
    assert [n.kind for n in nodes] == ["lightbulb", "fan"]
    assert all(n.is_on for n in nodes)
    assert all(len(n.history) == 20 for n in nodes)
    out = capsys.readouterr().out
    assert "Estimated bill" in out
    assert "Peak load at" in out
