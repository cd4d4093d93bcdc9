#!/usr/bin/env python3
"""CLI entry point for hcp-vpc.

Usage:
    hcp-vpc create  --cluster-name NAME --region REGION --working-dir DIR [--json]
    hcp-vpc destroy --cluster-name NAME --region REGION --working-dir DIR

Credentials come from --credentials (YAML with an 'aws:' section) or the
standard AWS environment variables. Terraform settings come from --config
or $HCP_VPC_CONFIG.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from config import ConfigError, load_aws_credentials, load_settings
from rosa.hcp_vpc import HCPVPCError, HCPVPCProvisioner

logger = logging.getLogger(__name__)


def _add_vpc_args(parser: argparse.ArgumentParser):
    """Arguments shared by create and destroy."""
    parser.add_argument('--cluster-name', required=True, help='Cluster name (names and tags the VPC)')
    parser.add_argument('--region', required=True, help='AWS region')
    parser.add_argument(
        '--working-dir', required=True,
        help='Terraform working directory (holds template and state)',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='hcp-vpc',
        description='Create or destroy the AWS VPC for a ROSA hosted control plane cluster',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--config', type=Path, help='Settings YAML (default: $HCP_VPC_CONFIG)')
    parser.add_argument('--credentials', type=Path, help="YAML file with an 'aws:' section")

    sub = parser.add_subparsers(dest='action')

    create_parser = sub.add_parser('create', help='Create the VPC and print its subnets')
    _add_vpc_args(create_parser)
    create_parser.add_argument('--json', action='store_true', help='Print subnets as JSON')

    destroy_parser = sub.add_parser('destroy', help='Destroy the VPC')
    _add_vpc_args(destroy_parser)

    return parser


def main(argv: Optional[list] = None) -> int:
    """hcp-vpc entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.action:
        parser.print_help()
        return 1

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    try:
        settings = load_settings(args.config)
        credentials = load_aws_credentials(args.credentials)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    provisioner = HCPVPCProvisioner(credentials, settings=settings)
    working_dir = args.working_dir

    try:
        if args.action == 'create':
            vpc = provisioner.create_vpc(args.cluster_name, args.region, working_dir)
            if args.json:
                print(json.dumps(vpc.as_dict(), indent=2))
            else:
                for name, subnet in vpc.as_dict().items():
                    print(f"{name}: {subnet}")
        else:
            provisioner.delete_vpc(args.cluster_name, args.region, working_dir)
    except HCPVPCError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
