#!/usr/bin/env python3
"""
ProximoX Dashboard Client

Runs one dashboard operation against the hypervisor and prints the JSON
response the dashboard API would return.
"""

import argparse
import json
import logging
import sys

from proximox import handlers
from proximox.client import ProximoxClient
from proximox.config import ProximoxConfig

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stderr),
        logging.FileHandler('dashboard.log')
    ]
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ProximoX hypervisor dashboard client")
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('cluster', help='Cluster status')
    commands.add_parser('stats', help='Statistics of the primary node')
    commands.add_parser('vms', help='List virtual machines')
    commands.add_parser('test-connection', help='Check connectivity and credentials')

    for action in ('start', 'stop', 'restart'):
        action_parser = commands.add_parser(action, help=f'{action.capitalize()} a VM')
        action_parser.add_argument('vm_id', help='VM id, e.g. vm-101')

    create = commands.add_parser('create', help='Create a VM')
    create.add_argument('--name', required=True)
    create.add_argument('--os', required=True, help='e.g. ubuntu-22.04')
    create.add_argument('--cpu', type=int, required=True, help='Core count')
    create.add_argument('--memory', type=int, required=True, help='Memory in MB')
    create.add_argument('--disk', type=int, required=True, help='Disk size in GB')
    create.add_argument('--description', default='')

    return parser


def dispatch(client: ProximoxClient, args: argparse.Namespace) -> handlers.Response:
    if args.command == 'cluster':
        return handlers.cluster_status(client)
    if args.command == 'stats':
        return handlers.server_stats(client)
    if args.command == 'vms':
        return handlers.list_vms(client)
    if args.command == 'test-connection':
        return handlers.test_connection(client)
    if args.command == 'create':
        return handlers.create_vm(client, {
            'name': args.name,
            'os': args.os,
            'cpu': args.cpu,
            'memory': args.memory,
            'disk': args.disk,
            'description': args.description,
        })
    return handlers.vm_action(client, args.command, {'vmId': args.vm_id})


def main(argv=None):
    """Main function to run one dashboard operation."""
    args = build_parser().parse_args(argv)

    try:
        # Load configuration
        logger.info("Loading configuration...")
        config = ProximoxConfig()
        logger.info("✓ Configuration loaded")
        logger.info(f"  Host: {config.proximox_host}:{config.proximox_port}")
        logger.info(f"  Auth method: {config.auth_method}")
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    client = ProximoxClient(config.server_config)
    try:
        status, body = dispatch(client, args)
    except KeyboardInterrupt:
        client.cancel()
        logger.error("Interrupted")
        sys.exit(130)
    finally:
        client.close()

    print(json.dumps(body, indent=2))
    sys.exit(0 if status == 200 else 1)


if __name__ == "__main__":
    main()
