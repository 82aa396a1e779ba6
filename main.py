import argparse
import logging
import time

import numpy as np

from ecopulse.analytics import find_peak_load, node_share
from ecopulse.config import DEFAULT_VOLTAGE_LIMIT, DEVICE_ADDRESS, LOG_LEVEL, RATE_PER_KWH, TICK_MS
from ecopulse.hardware import DeviceLink
from ecopulse.models.appliance import KINDS
from ecopulse.simulator import TelemetryService
from ecopulse.ticker import Ticker

_LOGGER = logging.getLogger("ecopulse")


def parse_node(value):
    name, _, kind = value.partition(":")
    kind = kind or "other"
    if kind not in KINDS:
        raise argparse.ArgumentTypeError(f"unknown kind {kind!r}, expected one of {', '.join(KINDS)}")
    return name, kind


def build_parser():
    parser = argparse.ArgumentParser(description="Run the EcoPulse telemetry simulation headless.")
    parser.add_argument("--ticks", type=int, default=25, help="number of ticks to run")
    parser.add_argument("--interval", type=float, default=TICK_MS / 1000, help="seconds between live ticks")
    parser.add_argument("--rate", type=float, default=RATE_PER_KWH, help="$ per kWh")
    parser.add_argument("--voltage-limit", type=float, default=DEFAULT_VOLTAGE_LIMIT)
    parser.add_argument("--seed", type=int, default=None, help="seed for reproducible jitter")
    parser.add_argument("--live", action="store_true", help="tick on the wall-clock timer instead of stepping")
    parser.add_argument("--add", type=parse_node, action="append", default=[], metavar="NAME:KIND",
                        help="add a switched-on node (repeatable)")
    return parser


def report(service):
    metrics = service.metrics()
    billing = service.billing()
    peak = find_peak_load(metrics.history)
    if peak is not None:
        print(f"Peak load at {peak[0]}: {peak[1]:.1f} W")
    print(f"Total consumption: {metrics.total_power:.1f} W, loss {metrics.total_loss:.2f} W, "
          f"{metrics.active_count}/{metrics.node_count} nodes active")
    print("Node load share (%):\n", node_share(service.snapshot()).round(1))
    print(f"Estimated bill: ${billing.estimated_monthly_cost:.2f}/mo "
          f"({billing.estimated_daily_kwh:.2f} kWh/day, ${billing.current_load_cost_per_hour:.4f}/hr)")
    print(f"Power loss waste: ${billing.monthly_loss_cost:.2f}/mo")


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    link = DeviceLink(DEVICE_ADDRESS) if DEVICE_ADDRESS else None
    service = TelemetryService(voltage_limit=args.voltage_limit, rate_per_kwh=args.rate,
                               device_link=link, rng=np.random.default_rng(args.seed))
    for name, kind in args.add:
        before = len(service.snapshot())
        nodes = service.add(name, kind)
        if len(nodes) > before:
            service.toggle(nodes[-1].id)
    try:
        if args.live:
            with Ticker(args.interval, service.tick):
                while service.tick_count < args.ticks:
                    time.sleep(0.1)
        else:
            for _ in range(args.ticks):
                service.tick()
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted after %d ticks", service.tick_count)
    finally:
        if link is not None:
            link.close()
    report(service)
    return service


if __name__ == "__main__":
    main()
