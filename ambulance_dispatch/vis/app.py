"""
Live view bridge: forwards bus events to Socket.IO clients and accepts
``request_dispatch`` / ``cancel_dispatch`` from them.
"""
import argparse
import logging
from typing import Dict, Tuple

from flask import Flask, jsonify
from flask_socketio import SocketIO

from ambulance_dispatch.config import NUM_AMBULANCES, setup_logging
from ambulance_dispatch.simulator.events import Topic
from ambulance_dispatch.simulator.routing import PROVIDERS, make_route_provider
from ambulance_dispatch.simulator.simulator import DispatchSimulator
from ambulance_dispatch.utils.geo_utils import Coordinate
from ambulance_dispatch.utils.seeding import HOSPITAL_LOCATION

logger = logging.getLogger(__name__)


def create_app(simulator: DispatchSimulator) -> Tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config['SECRET_KEY'] = 'secret!'
    socketio = SocketIO(app, async_mode='threading')

    def forward(topic):
        def handler(payload):
            socketio.emit(topic, payload.to_dict())
        return handler

    # Subscriptions live as long as the app
    app.extensions['dispatch_subscriptions'] = [
        simulator.bus.subscribe(topic, forward(topic)) for topic in Topic.ALL
    ]

    @app.route('/api/state')
    def state():
        return jsonify(simulator.get_state())

    @socketio.on('connect')
    def handle_connect():
        logger.info('Client connected')
        socketio.emit('simulation_state', simulator.get_state())

    @socketio.on('disconnect')
    def handle_disconnect():
        logger.info('Client disconnected')

    @socketio.on('request_dispatch')
    def handle_request_dispatch(data: Dict):
        try:
            location = Coordinate.from_dict(data)
        except (KeyError, TypeError, ValueError):
            return {"error": "request_dispatch needs numeric 'lat' and 'lng'"}
        dispatch = simulator.request_dispatch(
            location,
            requester_name=data.get('patientName', 'Unknown caller'),
            requester_phone=data.get('patientPhone', ''),
        )
        return dispatch.to_dict()

    @socketio.on('cancel_dispatch')
    def handle_cancel_dispatch(data: Dict):
        dispatch_id = (data or {}).get('dispatchId')
        try:
            cancelled = simulator.cancel(dispatch_id)
        except KeyError:
            return {"error": f"Unknown dispatch {dispatch_id}"}
        return {"dispatchId": dispatch_id, "cancelled": cancelled}

    return app, socketio


def main(argv=None):
    parser = argparse.ArgumentParser(description="Serve the live dispatch view over Socket.IO")
    parser.add_argument('--ambulances', type=int, default=NUM_AMBULANCES)
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--provider', choices=PROVIDERS, default='osrm')
    parser.add_argument('--place', default=None, help='OSM place name for --provider graph')
    parser.add_argument('--port', type=int, default=5001)
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    provider = make_route_provider(args.provider, place=args.place, center=HOSPITAL_LOCATION)
    simulator = DispatchSimulator.from_seed(args.ambulances, args.seed, route_provider=provider)
    app, socketio = create_app(simulator)
    socketio.run(app, debug=False, port=args.port, allow_unsafe_werkzeug=True)


if __name__ == '__main__':
    main()
