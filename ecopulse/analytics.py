from dataclasses import dataclass

import pandas as pd

# --- ANALYTICS FUNCTIONS ---

HISTORY_COLUMNS = ["timestamp", "power", "loss"]

# Past statements shown on the billing tab: (month, cost $, consumption kWh)
BILLING_HISTORY = pd.DataFrame(
    [
        ("Oct", 42.50, 304),
        ("Nov", 38.20, 272),
        ("Dec", 55.90, 399),
        ("Jan", 48.15, 344),
    ],
    columns=["month", "cost", "consumption"],
)


@dataclass(frozen=True)
class AggregateMetrics:
    total_power: float
    total_loss: float
    active_count: int
    node_count: int
    system_voltage: float
    history: pd.DataFrame


@dataclass(frozen=True)
class BillingProjection:
    estimated_daily_kwh: float
    estimated_monthly_cost: float
    current_load_cost_per_hour: float
    monthly_loss_cost: float


def aggregate_history(nodes):
    """
    Sum power and loss across nodes, aligned by history index (0 = oldest).
    Length follows the first node's history; a node with a shorter history
    contributes 0 at the missing indices. Timestamps come from the first node.
    """
    if not nodes:
        return pd.DataFrame(columns=HISTORY_COLUMNS)
    rows = []
    for i, reading in enumerate(nodes[0].history):
        power = sum(n.history[i].power for n in nodes if i < len(n.history))
        loss = sum(n.history[i].power_loss for n in nodes if i < len(n.history))
        rows.append((reading.timestamp, power, loss))
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def aggregate(nodes):
    """
    Derive dashboard totals from the current node state.
    Returns AggregateMetrics; an empty node collection yields all zeros.
    """
    return AggregateMetrics(
        total_power=sum(n.current_power for n in nodes),
        total_loss=sum(n.current_power_loss for n in nodes),
        active_count=sum(1 for n in nodes if n.is_on),
        node_count=len(nodes),
        system_voltage=nodes[0].current_voltage if nodes else 0.0,
        history=aggregate_history(nodes),
    )


def project_billing(total_power, total_loss, rate_per_kwh):
    """
    Project costs from instantaneous load, assuming it holds all day, every day.
    total_power, total_loss: W
    rate_per_kwh: $ per kWh
    """
    daily_kwh = total_power * 24 / 1000
    return BillingProjection(
        estimated_daily_kwh=daily_kwh,
        estimated_monthly_cost=daily_kwh * 30 * rate_per_kwh,
        current_load_cost_per_hour=(total_power / 1000) * rate_per_kwh,
        monthly_loss_cost=(total_loss / 1000) * rate_per_kwh * 24 * 30,
    )


def find_peak_load(history):
    """
    Identify the sample with the highest aggregate power.
    Returns (timestamp, power), or None when there is no history yet.
    """
    if history.empty:
        return None
    peak = history["power"].idxmax()
    return history.loc[peak, "timestamp"], history.loc[peak, "power"]


def node_share(nodes):
    """
    Returns % share of current total power per node name (active nodes only).
    """
    active = [n for n in nodes if n.current_power > 0]
    shares = pd.Series([n.current_power for n in active], index=[n.name for n in active], dtype=float)
    total = shares.sum()
    return shares / total * 100 if total > 0 else shares
