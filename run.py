"""
Run a batch of simulated ambulance requests against a randomly seeded fleet.

Each request is matched to the nearest available ambulance, driven to the
patient, loaded and taken to the nearest hospital. Statistics are logged at
the end; ``--plot`` saves a map of the ambulance trails.
"""

import argparse
import logging
import time

from ambulance_dispatch.config import NUM_AMBULANCES, SimulationConfig, setup_logging
from ambulance_dispatch.simulator import DispatchSimulator, DispatchTracker
from ambulance_dispatch.simulator.routing import PROVIDERS, make_route_provider
from ambulance_dispatch.utils.seeding import HOSPITAL_LOCATION, random_locations

logger = logging.getLogger("run")


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--ambulances", type=int, default=NUM_AMBULANCES)
    parser.add_argument("--requests", type=int, default=5)
    parser.add_argument("--interval", type=float, default=1.0, help="seconds between requests")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--provider", choices=PROVIDERS, default="straight")
    parser.add_argument("--place", default=None, help="OSM place name for --provider graph")
    parser.add_argument("--timeout", type=float, default=600.0)
    parser.add_argument("--plot", default=None, help="save a trail plot to this path")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    config = SimulationConfig.from_env()
    provider = make_route_provider(args.provider, place=args.place, center=HOSPITAL_LOCATION)
    simulator = DispatchSimulator.from_seed(args.ambulances, args.seed, route_provider=provider, config=config)
    tracker = DispatchTracker(simulator.bus)

    logger.info("Fleet of %d ambulances, %d requests, %s routing", args.ambulances, args.requests, args.provider)
    for location in random_locations(args.requests, seed=args.seed):
        dispatch = simulator.request_dispatch(location)
        logger.info("Requested %s at (%.5f, %.5f) → %s", dispatch.id, location.lat, location.lng, dispatch.status.value)
        time.sleep(args.interval)

    if not simulator.wait_all(args.timeout):
        logger.warning("Some dispatches still running after %.0f s", args.timeout)
    simulator.log_statistics()

    if args.plot:
        from ambulance_dispatch.utils.plotting import plot_dispatch_trace
        plot_dispatch_trace(tracker.to_frame(), simulator.fleet.facilities,
                            list(tracker.dispatches.values()), save_path=args.plot)
        logger.info("Trail plot saved to %s", args.plot)
    tracker.close()


if __name__ == "__main__":
    main()
