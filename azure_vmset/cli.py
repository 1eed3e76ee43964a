"""Argument parsing, configuration loading, and a node lookup summary."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from .cloud.models import Node
from .config import load_config
from .exceptions import ConfigError, VMSetError
from .logging_config import configure_logging
from .vmset import VMSet, new_vm_set

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="azure-vmset",
        description="Resolve Kubernetes nodes to their Azure VMs and VM sets",
    )
    parser.add_argument(
        "-c", "--config",
        required=True,
        help="Path to the YAML configuration file",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the configuration file and exit",
    )
    parser.add_argument(
        "--node",
        action="append",
        default=[],
        metavar="NAME",
        help="Node to look up (repeatable)",
    )
    return parser


def describe_node(vm_set: VMSet, node: Node) -> dict[str, Any]:
    """Everything the resolver knows about one node."""
    zone = vm_set.get_zone_by_node_name(node.name)
    private_ip, public_ip = vm_set.get_ip_by_node_name(node.name)
    return {
        "name": node.name,
        "instance_id": vm_set.get_instance_id_by_node_name(node.name),
        "instance_type": vm_set.get_instance_type_by_node_name(node.name),
        "zone": {"failure_domain": zone.failure_domain, "region": zone.region},
        "private_ip": private_ip,
        "public_ip": public_ip,
        "private_ips": vm_set.get_private_ips_by_node_name(node.name),
        "provisioning_state": vm_set.get_provisioning_state_by_node_name(node.name),
        "power_state": vm_set.get_power_status_by_node_name(node.name),
        "vm_set": vm_set.get_node_vm_set_name(node),
    }


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load config (minimal logging until config is loaded)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.logging)

    if args.validate:
        logger.info("Configuration is valid")
        return 0

    vm_set = new_vm_set(config)
    logger.info("Using %s resolver", type(vm_set).__name__)

    exit_code = 0
    summary = []
    for name in args.node:
        try:
            summary.append(describe_node(vm_set, Node(name=name)))
        except VMSetError as exc:
            logger.error("Lookup of node %s failed: %s", name, exc, extra={"node": name})
            summary.append({"name": name, "error": str(exc)})
            exit_code = 1

    print(json.dumps(summary, indent=2))
    return exit_code
