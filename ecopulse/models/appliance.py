# Appliance node model for the smart-home telemetry simulation
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Optional
from uuid import uuid4

from ecopulse.config import BASE_POWERS

KINDS = tuple(BASE_POWERS)


@dataclass(frozen=True)
class EnergyReading:
    """
    A single point-in-time sample appended to a node's history.
    timestamp: str, local wall-clock time (HH:MM:SS)
    power: float, watts
    voltage: float, volts
    power_loss: float, watts lost in transmission
    """
    timestamp: str
    power: float = 0.0
    voltage: float = 0.0
    power_loss: float = 0.0

    def to_dict(self):
        return {
            "timestamp": self.timestamp,
            "power": self.power,
            "voltage": self.voltage,
            "powerLoss": self.power_loss,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            timestamp=str(data["timestamp"]),
            power=float(data.get("power", 0.0)),
            voltage=float(data.get("voltage", 0.0)),
            power_loss=float(data.get("powerLoss", 0.0)),
        )


@dataclass(frozen=True)
class ApplianceNode:
    """
    Represents one energy-consuming device tracked by the dashboard.
    Nodes are immutable; every transition builds a new node with dataclasses.replace.
    """
    id: str
    name: str
    kind: str
    base_power: float
    is_on: bool = False
    current_power: float = 0.0
    current_voltage: float = 0.0
    current_power_loss: float = 0.0
    history: tuple[EnergyReading, ...] = field(default_factory=tuple)
    ai_prediction: Optional[str] = None

    @classmethod
    def create(cls, name, kind):
        """
        Build a fresh node: switched off, zeroed readings, empty history.
        name: str, user label
        kind: str, one of KINDS, selects the nominal power
        """
        return cls(id=new_node_id(), name=name, kind=kind, base_power=BASE_POWERS[kind])

    def with_reading(self, reading, window):
        """Return a copy carrying `reading` as the current sample, history capped at `window`."""
        history = (self.history + (reading,))[-window:]
        return replace(
            self,
            current_power=reading.power,
            current_voltage=reading.voltage,
            current_power_loss=reading.power_loss,
            history=history,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind,
            "isOn": self.is_on,
            "basePower": self.base_power,
            "currentPower": self.current_power,
            "currentVoltage": self.current_voltage,
            "currentPowerLoss": self.current_power_loss,
            "history": [r.to_dict() for r in self.history],
            "aiPrediction": self.ai_prediction,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data["id"]),
            name=data["name"],
            kind=data["type"],
            base_power=float(data["basePower"]),
            is_on=bool(data.get("isOn", False)),
            current_power=float(data.get("currentPower", 0.0)),
            current_voltage=float(data.get("currentVoltage", 0.0)),
            current_power_loss=float(data.get("currentPowerLoss", 0.0)),
            history=tuple(EnergyReading.from_dict(r) for r in data.get("history", [])),
            ai_prediction=data.get("aiPrediction"),
        )


def new_node_id():
    # Creation time in ms plus a short random suffix keeps ids unique within one tick
    return f"{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def default_nodes():
    """The node set a fresh dashboard starts with."""
    return (
        ApplianceNode(
            id="bulb-01",
            name="Smart Light Bulb",
            kind="lightbulb",
            base_power=BASE_POWERS["lightbulb"],
            is_on=True,
            current_power=12.5,
            current_voltage=220.0,
            current_power_loss=0.4,
        ),
    )


def nodes_to_records(nodes):
    """Serialize a node tuple for a dcc.Store."""
    return [node.to_dict() for node in nodes]


def nodes_from_records(records):
    return tuple(ApplianceNode.from_dict(r) for r in (records or []))
