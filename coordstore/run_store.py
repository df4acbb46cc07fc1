#!/usr/bin/env python3
"""
Entry point for running the coordination store server.
"""

import argparse
import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coordstore.app import create_app


def main():
    parser = argparse.ArgumentParser(description='Coordination Store Server')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind')
    parser.add_argument('--port', type=int, default=5000, help='Port to bind')
    parser.add_argument('--reap-interval', type=float, default=0.5, help='Seconds between lease expiry sweeps')
    parser.add_argument('--history-size', type=int, default=10000, help='Watch events retained before compaction')
    parser.add_argument('--log-level', default='INFO', help='Logging level')

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    app = create_app(reap_interval=args.reap_interval, history_size=args.history_size)
    logging.getLogger(__name__).info("Starting coordination store on %s:%s", args.host, args.port)

    app.run(host=args.host, port=args.port, threaded=True)


if __name__ == '__main__':
    main()
