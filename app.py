import atexit
import logging
from uuid import uuid4

import dash
from dash import dcc, html, Output, Input, State, ALL, ctx, no_update
import dash_bootstrap_components as dbc

from ecopulse.config import (
    DEBUG,
    DEFAULT_VOLTAGE_LIMIT,
    DEVICE_ADDRESS,
    DEVICE_ADDRESS_KEY,
    LOG_LEVEL,
    RATE_PER_KWH,
    SESSION_KEY,
    TICK_MS,
    VOLTAGE_LIMIT_MAX,
    VOLTAGE_LIMIT_MIN,
)
from ecopulse.analytics import BILLING_HISTORY, aggregate, node_share, project_billing
from ecopulse.hardware import DeviceLink, LinkStatus, probe
from ecopulse.insights import IDENTIFY_MIN_HISTORY, InsightsClient
from ecopulse.models.appliance import default_nodes, nodes_from_records, nodes_to_records
from ecopulse.session import load_user, login
from ecopulse.simulator import add, advance, annotate, find_node, needs_relay, remove, toggle
from ecopulse.visualizer import get_billing_history_fig, get_load_fig, get_node_fig, get_share_fig

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
_LOGGER = logging.getLogger(__name__)

# Dash app with dark theme
app = dash.Dash(__name__, external_stylesheets=[dbc.themes.DARKLY, dbc.icons.FONT_AWESOME])
app.title = "EcoPulse | IoT Node"

insights = InsightsClient()
device_link = DeviceLink(DEVICE_ADDRESS)
atexit.register(device_link.close)

KIND_ICONS = {"lightbulb": "fa-lightbulb", "fan": "fa-wind", "heater": "fa-fire", "other": "fa-plug"}
KIND_LABELS = {"lightbulb": "LED Bulb", "fan": "Cooling Fan", "heater": "Thermal Unit", "other": "Generic Port"}
HIDDEN = {"display": "none"}
SHOWN = {"display": "block"}
INLINE = {"display": "inline-block"}

# Header badge (label, color) per hardware link status
LINK_BADGES = {
    LinkStatus.IDLE: ("Virtual Mode", "secondary"),
    LinkStatus.LINKING: ("Linking", "warning"),
    LinkStatus.CONNECTED: ("Hardware Linked", "success"),
    LinkStatus.ERROR: ("Link Error", "danger"),
    LinkStatus.OFFLINE: ("Virtual Mode", "secondary"),
}


def kpi_card(title, value, unit, color):
    return dbc.Col(dbc.Card(dbc.CardBody([
        html.Small(title, className="text-uppercase text-muted fw-bold"),
        html.H3([value, html.Small(f" {unit}", className="text-muted fs-6")], className="mb-0"),
    ]), className=f"border-start border-4 border-{color}"), md=3, sm=6, className="mb-3")


def render_node_card(node, identifying=False):
    """
    Card for one appliance: toggle, live readings, sparkline, AI and delete actions.
    While `identifying`, the AI button spins and is disabled.
    """
    return dbc.Col(dbc.Card([
        dbc.CardHeader(dbc.Row([
            dbc.Col([
                html.I(className=f"fas {KIND_ICONS.get(node.kind, 'fa-plug')} me-2 "
                                 + ("text-success" if node.is_on else "text-muted")),
                html.Strong(node.name),
                html.Small(f" {node.kind}", className="text-uppercase text-muted"),
            ]),
            dbc.Col(dbc.Button(
                "ON" if node.is_on else "OFF",
                id={"type": "toggle-btn", "index": node.id},
                color="success" if node.is_on else "secondary",
                size="sm",
            ), width="auto"),
        ], align="center")),
        dbc.CardBody([
            dbc.Row([
                dbc.Col([html.Small("Power", className="text-muted text-uppercase"),
                         html.H5(f"{node.current_power:.1f} W")]),
                dbc.Col([html.Small("Loss", className="text-danger text-uppercase"),
                         html.H5(f"{node.current_power_loss:.2f} W")], className="text-end"),
            ]),
            dcc.Graph(figure=get_node_fig(node), config={"displayModeBar": False}),
            html.Small(node.ai_prediction or "", className="text-info d-block mb-2"),
            dbc.ButtonGroup([
                dbc.Button(html.I(className="fas fa-spinner fa-spin" if identifying else "fas fa-brain"),
                           id={"type": "identify-btn", "index": node.id},
                           color="info", outline=True, size="sm",
                           disabled=identifying or len(node.history) < IDENTIFY_MIN_HISTORY,
                           title="Identify appliance"),
                dbc.Button(html.I(className="fas fa-trash-alt"), id={"type": "delete-btn", "index": node.id},
                           color="danger", outline=True, size="sm", title="Remove node"),
            ], size="sm"),
        ]),
    ]), md=6, className="mb-3")


# --- DASH APP LAYOUT ---

login_view = dbc.Container(dbc.Row(dbc.Col(dbc.Card([
    dbc.CardHeader(html.H4([html.I(className="fas fa-bolt me-2 text-success"), "EcoPulse"])),
    dbc.CardBody([
        dbc.Input(id="login-email", type="email", placeholder="admin@ecopulse.io", className="mb-3"),
        dbc.Input(id="login-password", type="password", placeholder="Password", className="mb-3"),
        dbc.Button("Sign In", id="login-btn", color="success", className="w-100"),
    ]),
]), md=4), justify="center", className="mt-5"), id="login-view", style=SHOWN)

monitor_tab = html.Div([
    dbc.Row(id="kpi-row", className="mt-3"),
    dbc.Row([
        # Appliance center (left)
        dbc.Col([
            dbc.Row([
                dbc.Col(html.H5([html.I(className="fas fa-microchip me-2 text-success"), "Appliance Center"])),
                dbc.Col(dbc.Button([html.I(className="fas fa-plus me-1"), "Connect New"],
                                   id="open-add", color="success", size="sm"), width="auto"),
            ], className="mb-2"),
            dbc.Row(id="node-grid"),
            dbc.Card(dbc.CardBody(dcc.Graph(id="load-graph", figure={}, config={"displayModeBar": False}))),
        ], lg=8),
        # Neural analysis and safety settings (right)
        dbc.Col([
            html.H5([html.I(className="fas fa-wand-magic-sparkles me-2 text-info"), "Neural Analysis"]),
            dbc.Card(dbc.CardBody([
                dcc.Loading(html.Div("Awaiting telemetry", id="insight-output",
                                     className="small text-muted", style={"whiteSpace": "pre-wrap"})),
                dbc.Button([html.I(className="fas fa-bolt me-2"), "Deep Scan Network"],
                           id="analyze-btn", color="primary", className="w-100 mt-3"),
            ]), className="mb-3"),
            dbc.Card([
                dbc.CardHeader("System Safety Calibration"),
                dbc.CardBody([
                    html.Div(["Voltage Threshold ", html.Span(id="voltage-limit-label", className="text-warning")]),
                    dcc.Slider(id="voltage-limit", min=VOLTAGE_LIMIT_MIN, max=VOLTAGE_LIMIT_MAX, step=1,
                               value=DEFAULT_VOLTAGE_LIMIT, marks=None,
                               tooltip={"placement": "bottom"}),
                ]),
            ], className="mb-3"),
            dbc.Card([
                dbc.CardHeader("Hardware Link"),
                dbc.CardBody(dbc.InputGroup([
                    dbc.Input(id="device-address-input", placeholder="192.168.1.50"),
                    dbc.Button("Link", id="device-address-save", color="secondary"),
                ])),
            ], className="mb-3"),
            dcc.Graph(id="share-graph", figure={}, config={"displayModeBar": False}),
        ], lg=4),
    ]),
])

billing_tab = html.Div([
    dbc.Row([
        dbc.Col(dbc.Card([
            dbc.CardHeader(dbc.Row([
                dbc.Col([html.H5("Monthly Billing Forecast", className="mb-0"),
                         html.Small("Based on current real-time consumption levels", className="text-muted")]),
                dbc.Col(html.Span(f"${RATE_PER_KWH}/kWh", className="text-success fw-bold"), width="auto"),
            ])),
            dbc.CardBody(id="billing-forecast"),
        ], className="border-start border-4 border-success"), md=8),
        dbc.Col(dbc.Card([
            dbc.CardHeader([html.I(className="fas fa-history me-2 text-info"), "Payment History"]),
            dbc.CardBody([
                html.Div([
                    dbc.Row([
                        dbc.Col([html.Strong(f"{row.month} Statement"),
                                 html.Small(f" {row.consumption} kWh consumed", className="text-muted")]),
                        dbc.Col(html.Span(f"${row.cost:.2f} PAID", className="text-success"), width="auto"),
                    ], className="mb-2")
                    for row in BILLING_HISTORY.itertuples()
                ]),
                dbc.Alert("Switching to Eco-Saver Mode could save you up to $12.40 this month.",
                          color="info", className="small mt-3 mb-0"),
            ]),
        ]), md=4),
    ], className="mt-3 mb-3"),
    dbc.Card(dbc.CardBody(dcc.Graph(figure=get_billing_history_fig(), config={"displayModeBar": False}))),
])

dashboard_view = dbc.Container([
    dbc.Row([
        dbc.Col(html.H3([html.I(className="fas fa-bolt me-2 text-success"), "EcoPulse ",
                         html.Span("| IoT Node", className="text-muted fw-light")])),
        dbc.Col([
            # Swapped in while the probe runs
            dbc.Badge(LINK_BADGES[LinkStatus.LINKING][0], id="linking-badge", color=LINK_BADGES[LinkStatus.LINKING][1],
                      pill=True, className="me-3", style=HIDDEN),
            dbc.Badge(LINK_BADGES[LinkStatus.IDLE][0], id="link-badge", color=LINK_BADGES[LinkStatus.IDLE][1],
                      pill=True, className="me-3", style=INLINE),
            html.Span(id="user-label", className="me-3 text-muted"),
            dbc.Button(html.I(className="fas fa-power-off"), id="logout-btn", color="dark", size="sm"),
        ], width="auto", className="d-flex align-items-center"),
    ], className="my-4", align="center"),
    dbc.Tabs([
        dbc.Tab(monitor_tab, label="Monitor", tab_id="monitor"),
        dbc.Tab(billing_tab, label="Billing", tab_id="billing"),
    ], active_tab="monitor"),
    # Add-node modal
    dbc.Modal([
        dbc.ModalHeader(dbc.ModalTitle("Add Node")),
        dbc.ModalBody([
            dbc.Label("Identifier"),
            dbc.Input(id="new-name", placeholder="e.g. Living Room LED", className="mb-3"),
            dbc.Label("Load Profile"),
            dbc.Select(id="new-kind", value="lightbulb",
                       options=[{"label": label, "value": kind} for kind, label in KIND_LABELS.items()]),
        ]),
        dbc.ModalFooter([
            dbc.Button("Cancel", id="add-cancel", color="secondary"),
            dbc.Button("Connect", id="add-confirm", color="success"),
        ]),
    ], id="add-modal", is_open=False),
    html.Footer(html.Small("EcoPulse v2.8.0 • Real-time Monitoring Active", className="text-muted"),
                className="text-center my-4"),
], fluid=True, id="dashboard-view", style=HIDDEN)

app.layout = html.Div([
    # Browser-side state: session and device address persist in local storage
    dcc.Store(id=SESSION_KEY, storage_type="local"),
    dcc.Store(id=DEVICE_ADDRESS_KEY, storage_type="local", data=DEVICE_ADDRESS),
    dcc.Store(id="nodes-store", data=nodes_to_records(default_nodes())),
    dcc.Store(id="identify-request"),
    dcc.Store(id="prediction-store"),
    # Simulation tick, only running while someone is logged in
    dcc.Interval(id="tick", interval=TICK_MS, disabled=True),
    login_view,
    dashboard_view,
])

# --- SESSION CALLBACKS ---

@app.callback(
    Output(SESSION_KEY, "data"),
    [Input("login-btn", "n_clicks"), Input("logout-btn", "n_clicks")],
    [State("login-email", "value"), State("login-password", "value")],
    prevent_initial_call=True,
)
def update_session(login_clicks, logout_clicks, email, password):
    if ctx.triggered_id == "logout-btn":
        _LOGGER.info("User logged out")
        return None
    user = login(email) if password else None
    if user is None:
        return no_update
    _LOGGER.info("User %s logged in", user.email)
    return user.to_dict()


@app.callback(
    [Output("login-view", "style"),
     Output("dashboard-view", "style"),
     Output("tick", "disabled"),
     Output("user-label", "children")],
    Input(SESSION_KEY, "data"),
)
def switch_view(session):
    user = load_user(session)
    if user is None:
        return SHOWN, HIDDEN, True, ""
    return HIDDEN, SHOWN, False, user.name

# --- NODE STATE CALLBACK ---
# Single writer for nodes-store: every transition replaces the whole node list.

@app.callback(
    Output("nodes-store", "data"),
    [Input("tick", "n_intervals"),
     Input({"type": "toggle-btn", "index": ALL}, "n_clicks"),
     Input({"type": "delete-btn", "index": ALL}, "n_clicks"),
     Input("add-confirm", "n_clicks"),
     Input("prediction-store", "data"),
     Input(SESSION_KEY, "data")],
    [State("nodes-store", "data"),
     State("voltage-limit", "value"),
     State("new-name", "value"),
     State("new-kind", "value"),
     State(DEVICE_ADDRESS_KEY, "data")],
    prevent_initial_call=True,
)
def update_nodes(n_intervals, toggle_clicks, delete_clicks, add_clicks, prediction, session,
                 records, voltage_limit, new_name, new_kind, device_address):
    trigger = ctx.triggered_id
    if trigger is None:
        raise dash.exceptions.PreventUpdate
    # Fresh dashboard on login and logout
    if trigger == SESSION_KEY:
        return nodes_to_records(default_nodes())
    nodes = nodes_from_records(records)
    if trigger == "tick":
        nodes = advance(nodes, voltage_limit or DEFAULT_VOLTAGE_LIMIT)
    elif trigger == "add-confirm":
        nodes = add(nodes, new_name or "", new_kind)
    elif trigger == "prediction-store":
        if not prediction or prediction.get("text") is None:
            raise dash.exceptions.PreventUpdate
        nodes = annotate(nodes, prediction["id"], prediction["text"])
    else:
        # Pattern-matched buttons fire with n_clicks=None when a card is re-rendered
        if not ctx.triggered[0]["value"]:
            raise dash.exceptions.PreventUpdate
        node_id = trigger["index"]
        if trigger["type"] == "toggle-btn":
            nodes = toggle(nodes, node_id)
            node = find_node(nodes, node_id)
            if node is not None and needs_relay(node) and device_address:
                device_link.send_relay_async(node.is_on, address=device_address)
        elif trigger["type"] == "delete-btn":
            nodes = remove(nodes, node_id)
    return nodes_to_records(nodes)

# --- MAIN DASHBOARD CALLBACK ---

@app.callback(
    [Output("kpi-row", "children"),
     Output("node-grid", "children"),
     Output("load-graph", "figure"),
     Output("share-graph", "figure"),
     Output("analyze-btn", "disabled"),
     Output("billing-forecast", "children"),
     Output("voltage-limit-label", "children")],
    [Input("nodes-store", "data"),
     Input("voltage-limit", "value"),
     Input("identify-request", "data"),
     Input("prediction-store", "data")],
)
def update_dashboard(records, voltage_limit, identify_request=None, prediction=None):
    nodes = nodes_from_records(records)
    busy_id = identifying_node_id(identify_request, prediction)
    metrics = aggregate(nodes)
    billing = project_billing(metrics.total_power, metrics.total_loss, RATE_PER_KWH)
    kpis = [
        kpi_card("Total Consumption", f"{metrics.total_power:.1f}", "W", "success"),
        kpi_card("Power Loss", f"{metrics.total_loss:.2f}", "W", "danger"),
        kpi_card("System Voltage", f"{metrics.system_voltage:.1f}", "V", "primary"),
        kpi_card("Active Nodes", str(metrics.active_count), f"/ {metrics.node_count}", "warning"),
    ]
    forecast = [
        html.H1(f"${billing.estimated_monthly_cost:.2f}", className="text-success"),
        html.Small("Est. Bill", className="text-muted text-uppercase"),
        html.Div([
            dbc.Row([dbc.Col("Current Load Cost"),
                     dbc.Col(f"${billing.current_load_cost_per_hour:.4f} /hr", width="auto")]),
            dbc.Progress(value=min(metrics.total_power / 1000 * 100, 100), color="success", className="mb-3"),
            dbc.Row([dbc.Col("Power Loss Waste"),
                     dbc.Col(f"-${billing.monthly_loss_cost:.2f} /mo", width="auto", className="text-danger")]),
            dbc.Progress(value=min(metrics.total_loss / 10 * 100, 100), color="danger"),
        ], className="mt-4"),
        html.Small(f"{billing.estimated_daily_kwh:.2f} kWh/day at current load", className="text-muted"),
    ]
    return (
        kpis,
        [render_node_card(node, identifying=node.id == busy_id) for node in nodes],
        get_load_fig(metrics.history),
        get_share_fig(node_share(nodes)),
        not nodes,
        forecast,
        f"{voltage_limit}V",
    )

# --- AI CALLBACKS ---

@app.callback(
    Output("insight-output", "children"),
    Input("analyze-btn", "n_clicks"),
    [State("nodes-store", "data"), State("voltage-limit", "value")],
    prevent_initial_call=True,
)
def run_analysis(n_clicks, records, voltage_limit):
    nodes = nodes_from_records(records)
    if not nodes:
        raise dash.exceptions.PreventUpdate
    return insights.energy_insights(nodes, voltage_limit or DEFAULT_VOLTAGE_LIMIT)


def identifying_node_id(identify_request, prediction):
    """Node whose identification is still waiting for an answer, or None."""
    if not identify_request:
        return None
    if prediction and prediction.get("token") == identify_request["token"]:
        return None
    return identify_request["id"]


@app.callback(
    Output("identify-request", "data"),
    Input({"type": "identify-btn", "index": ALL}, "n_clicks"),
    [State("nodes-store", "data"),
     State("identify-request", "data"),
     State("prediction-store", "data")],
    prevent_initial_call=True,
)
def request_identify(identify_clicks, records, identify_request, prediction):
    trigger = ctx.triggered_id
    if trigger is None or not ctx.triggered[0]["value"]:
        raise dash.exceptions.PreventUpdate
    # One identification at a time
    if identifying_node_id(identify_request, prediction) is not None:
        raise dash.exceptions.PreventUpdate
    node = find_node(nodes_from_records(records), trigger["index"])
    if node is None or len(node.history) < IDENTIFY_MIN_HISTORY:
        raise dash.exceptions.PreventUpdate
    return {"id": node.id, "token": uuid4().hex}


@app.callback(
    Output("prediction-store", "data"),
    Input("identify-request", "data"),
    State("nodes-store", "data"),
    prevent_initial_call=True,
)
def identify_node(identify_request, records):
    if not identify_request:
        raise dash.exceptions.PreventUpdate
    node = find_node(nodes_from_records(records), identify_request["id"])
    # Node deleted meanwhile: answer anyway so the request is no longer pending
    text = insights.predict_device_type(node.history) if node is not None else None
    return {"id": identify_request["id"], "text": text, "token": identify_request["token"]}

# --- HARDWARE LINK CALLBACKS ---

@app.callback(
    Output(DEVICE_ADDRESS_KEY, "data"),
    Input("device-address-save", "n_clicks"),
    State("device-address-input", "value"),
    prevent_initial_call=True,
)
def save_device_address(n_clicks, address):
    return (address or "").strip()


@app.callback(
    [Output("link-badge", "children"),
     Output("link-badge", "color"),
     Output("device-address-input", "value")],
    Input(DEVICE_ADDRESS_KEY, "data"),
    running=[
        (Output("linking-badge", "style"), INLINE, HIDDEN),
        (Output("link-badge", "style"), HIDDEN, INLINE),
    ],
)
def check_connection(address):
    # Probed once per address change; no retry on failure
    status = probe(address)
    _LOGGER.info("Hardware link %s: %s", address or "-", status.value)
    label, color = LINK_BADGES[status]
    return label, color, address

# --- ADD-NODE MODAL ---

@app.callback(
    [Output("add-modal", "is_open"), Output("new-name", "value")],
    [Input("open-add", "n_clicks"), Input("add-cancel", "n_clicks"), Input("add-confirm", "n_clicks")],
    [State("add-modal", "is_open"), State("new-name", "value")],
    prevent_initial_call=True,
)
def toggle_add_modal(open_clicks, cancel_clicks, confirm_clicks, is_open, name):
    trigger = ctx.triggered_id
    if trigger == "open-add":
        return True, no_update
    if trigger == "add-confirm" and not (name or "").strip():
        # Empty identifier: keep the form open
        return True, no_update
    return False, ""


if __name__ == "__main__":
    app.run(debug=DEBUG)
