import plotly.graph_objs as go
import plotly.io as pio

from ecopulse.analytics import BILLING_HISTORY

pio.templates.default = "plotly_dark"

EMERALD = "#10b981"
RED = "#ef4444"

# --- VISUALIZATION FUNCTIONS ---

def _compact(fig, height):
    fig.update_layout(
        height=height,
        margin=dict(l=10, r=10, t=40, b=10),
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(0,0,0,0)",
        uirevision="keep",
    )
    return fig


def get_load_fig(history):
    """
    Returns a Plotly Figure of aggregate power (filled area) and loss (line)
    over the retained sample window.
    history: DataFrame with timestamp, power and loss columns
    """
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=history["timestamp"], y=history["power"], mode="lines", name="Power",
        fill="tozeroy", line=dict(color=EMERALD, width=2),
    ))
    fig.add_trace(go.Scatter(
        x=history["timestamp"], y=history["loss"], mode="lines", name="Loss",
        line=dict(color=RED, width=1, dash="dot"),
    ))
    fig.update_layout(title="Real-time Load Analytics", xaxis_title="Time", yaxis_title="W",
                      showlegend=False)
    return _compact(fig, 260)


def get_node_fig(node):
    """Returns a small sparkline of one node's power history."""
    fig = go.Figure(go.Scatter(
        x=[r.timestamp for r in node.history],
        y=[r.power for r in node.history],
        mode="lines",
        line=dict(color=EMERALD if node.is_on else "#64748b", width=2),
    ))
    fig.update_layout(showlegend=False, xaxis_visible=False, yaxis_visible=False)
    fig = _compact(fig, 70)
    fig.update_layout(margin=dict(l=0, r=0, t=0, b=0))
    return fig


def get_share_fig(shares):
    """
    Returns a Plotly Figure for the per-node share of current load.
    shares: Series of % keyed by node name
    """
    fig = go.Figure(go.Pie(labels=shares.index, values=shares.values, hole=0.5))
    fig.update_layout(title="Load Share (%)")
    return _compact(fig, 260)


def get_billing_history_fig(history=BILLING_HISTORY):
    """
    Returns a Plotly bar chart of past monthly costs; the most expensive month is red.
    """
    peak = history["cost"].idxmax()
    colors = [RED if i == peak else EMERALD for i in history.index]
    fig = go.Figure(go.Bar(
        x=history["month"],
        y=history["cost"],
        marker_color=colors,
        customdata=history["consumption"],
        hovertemplate="<b>%{x}</b><br>$%{y:.2f}<br>%{customdata} kWh<extra></extra>",
    ))
    fig.update_layout(title="Consumption Trend (Past 4 Months)", xaxis_title="Month", yaxis_title="$")
    return _compact(fig, 300)
