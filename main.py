#!/usr/bin/env python3
"""Entry point for the cross-chain messenger relayer.

This module deploys a hub-and-spoke network from the environment, optionally
dispatches a batch of demo messages, and runs the relayer service that
carries them to their destination.
"""

import argparse
import asyncio
import logging
import os
import sys


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from xchain_messenger.relayer import MessageRelayer  # noqa: E402
from xchain_messenger.utils.contract_utility import ContractUtility  # noqa: E402


def dispatch_demo_messages(relayer: MessageRelayer, count: int) -> None:
    """Send `count` setResult calls from the first spoke to a receiver on the hub.

    The open bundle is committed afterwards so the messages travel even when
    `count` is below the route's bundle size.
    """
    network = relayer.network
    hub_chain_id = network.config.hub_chain_id
    spoke_chain_id = network.config.spoke_chain_ids[0]
    spoke = network[spoke_chain_id]

    receiver = network.deploy_receiver(hub_chain_id)
    sender = relayer.relayer_address
    fee = spoke.dispatcher.get_route(hub_chain_id).message_fee
    network.fund(spoke_chain_id, sender, fee * count)

    contract_util = ContractUtility()
    for i in range(count):
        data = contract_util.encode_call("MessageReceiver", "setResult", [i + 1])
        spoke.dispatcher.dispatch(sender, hub_chain_id, receiver.address, data, fee)

    spoke.dispatcher.commit_pending_bundle(sender, hub_chain_id)
    logger.info(
        f"Dispatched {count} demo messages from chain {spoke_chain_id} "
        f"to receiver {receiver.address} on hub {hub_chain_id}"
    )


async def main() -> None:
    """Main entry point for the messenger relayer.

    Parses startup arguments, loads configuration from environment,
    and runs the relayer until interrupted or the run time elapses.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Cross-chain messenger relayer - bundle, relay and execute messages between chains",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  HUB_CHAIN_ID          - Hub chain id (default: 1000)
  SPOKE_CHAIN_IDS       - Comma-separated spoke chain ids (default: 2000,2001)
  MESSAGE_FEE           - Fee per message in wei
  MAX_BUNDLE_MESSAGES   - Messages per bundle on spoke routes (default: 32)
  EXIT_TIME             - Seconds before a relay earns its fee (default: 60)
  CONNECTOR_KIND        - mock or native (default: mock)
  POLLING_INTERVAL      - Event polling interval (default: 2)
  PRIVATE_KEY           - Relayer key (generated with --local when unset)
  LOG_LEVEL             - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--local",
        action="store_true",
        default=False,
        help="Run in local mode, generating a relayer key if PRIVATE_KEY is unset"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)"
    )
    parser.add_argument(
        "--demo-messages",
        type=int,
        default=0,
        metavar="N",
        help="Dispatch N demo messages from the first spoke to the hub before starting"
    )
    parser.add_argument(
        "--run-seconds",
        type=float,
        default=None,
        metavar="S",
        help="Stop the relayer after S seconds (runs until interrupted by default)"
    )
    args = parser.parse_args()

    setup_logging(args.log_level)
    logger.info(f"Starting in {'LOCAL' if args.local else 'PRODUCTION'} mode")

    relayer = None
    try:
        relayer = MessageRelayer.from_env(local_mode=args.local)

        if args.demo_messages > 0:
            dispatch_demo_messages(relayer, args.demo_messages)

        if args.run_seconds is not None:
            asyncio.get_running_loop().call_later(args.run_seconds, relayer.stop)

        await relayer.run()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Required environment variables:")
        logger.error("  - PRIVATE_KEY: Relayer private key (optional with --local)")
        logger.error("  - SPOKE_CHAIN_IDS: At least one spoke chain id, not the hub's")
        logger.error("  - TREASURY_ADDRESS / PUBLIC_GOODS_ADDRESS: Valid addresses if set")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        if relayer is not None:
            relayer.stop()
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
