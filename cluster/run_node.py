#!/usr/bin/env python3
"""
Script to run a cluster node against a coordination store.
"""

import argparse
import logging
import os
import signal
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coordclient.client import CoordinationClient
from cluster.errors import ClusterError
from cluster.node import ClusterNode


def main():
    parser = argparse.ArgumentParser(description='Run a cluster node')
    parser.add_argument('--node-id', default=f"client-{os.getpid()}", help='Node ID (default: client-<pid>)')
    parser.add_argument('--store-host', default='localhost', help='Coordination store host')
    parser.add_argument('--store-port', type=int, default=5000, help='Coordination store port')
    parser.add_argument('--ttl', type=float, default=30, help='Session lease TTL in seconds')
    parser.add_argument('--poll-interval', type=float, default=1.0, help='Seconds between leadership checks')
    parser.add_argument('--log-level', default='INFO', help='Logging level')

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    client = CoordinationClient(host=args.store_host, port=args.store_port)
    node = ClusterNode(
        node_id=args.node_id,
        client=client,
        ttl=args.ttl,
        poll_interval=args.poll_interval
    )

    def terminate(signum, frame):
        node.stop()

    signal.signal(signal.SIGTERM, terminate)
    signal.signal(signal.SIGINT, terminate)

    try:
        node.start()
    except ClusterError as e:
        logging.getLogger(__name__).error("Node %s exited: %s", args.node_id, e)
        sys.exit(1)
    finally:
        client.close()


if __name__ == '__main__':
    main()
