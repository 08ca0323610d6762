"""Command line tool for keeping a deployment target on the published version."""

import argparse
import asyncio
import logging
import sys
import traceback

from update_controller.exceptions import UpdateControllerException
from . import kubernetes, node

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Apply updates published by an update coordinator.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    kubernetes.KubernetesAction.register(subparsers)
    node.NodeAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Update-controller command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except UpdateControllerException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("update-controller error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
