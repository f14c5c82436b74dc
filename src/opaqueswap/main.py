"""Main entry point - runs the relayer or an end-to-end demo."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

import httpx
import uvicorn
from eth_account import Account

from opaqueswap.chain.runtime import Chain
from opaqueswap.client.gateway import CryptoGateway
from opaqueswap.client.relayer_client import RelayerClient
from opaqueswap.client.signer import LocalWalletSigner
from opaqueswap.config import Settings, get_settings
from opaqueswap.contracts.swap import SwapDirection
from opaqueswap.relayer.app import create_app
from opaqueswap.services.dex import Asset, Deployment, DexService, deploy_opaque_swap, parse_units

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class Application:
    """Relayer server with its own chain and a funded swap deployed on it."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.deployment: Optional[Deployment] = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start the relayer and wait for shutdown."""
        logger.info("Starting OpaqueSwap relayer...")
        logger.info(f"Environment: {self.settings.environment}")
        logger.debug(f"Settings: {self.settings.get_safe_dict()}")

        chain = await Chain.create(self.settings)
        self.deployment = await deploy_with_liquidity(chain, self.settings)
        task = asyncio.create_task(self._run_api(chain))

        await self._shutdown_event.wait()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        await chain.close()
        logger.info("Cleanup complete")

    async def _run_api(self, chain: Chain):
        """Run the FastAPI server."""
        try:
            app = create_app(chain=chain, settings=self.settings)
            app.state.deployment = self.deployment
            config = uvicorn.Config(
                app,
                host=self.settings.relayer_host,
                port=self.settings.relayer_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting relayer on {self.settings.relayer_host}:{self.settings.relayer_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("Relayer server cancelled")
        except Exception as e:
            logger.error(f"Relayer error: {e}")
            raise
        finally:
            self._shutdown_event.set()

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


async def deploy_with_liquidity(chain: Chain, settings: Settings) -> Deployment:
    """Deploy wETH, wUSDT and the swap, funding the swap with 20 wETH and 62000 wUSDT."""
    deployer = Account.create()
    decimals = settings.token_decimals
    system = await deploy_opaque_swap(chain, deployer.address, decimals)
    await chain.send(deployer.address, system.token_a.mint, system.swap.address, parse_units("20", decimals))
    await chain.send(deployer.address, system.token_b.mint, system.swap.address, parse_units("62000", decimals))
    logger.info(
        f"Deployed {system.token_a.symbol} at {system.token_a.address}, "
        f"{system.token_b.symbol} at {system.token_b.address}, swap at {system.swap.address}"
    )
    return system


async def run_demo(settings: Settings, swap_amount: str = "1") -> dict[str, str]:
    """Deploy the system in-process, swap and decrypt the results.

    Mirrors the reference scenario: the engine holds 20 wETH and 62000 wUSDT
    of liquidity, the user mints 10 wETH, grants the engine a one-hour
    operator role and swaps.

    Returns:
        Decrypted balances of the user after the swap, in display units
    """
    chain = await Chain.create(settings)
    try:
        user = Account.create()
        system = await deploy_with_liquidity(chain, settings)
        decimals = settings.token_decimals

        app = create_app(chain=chain, settings=settings)
        relayer = RelayerClient(
            "http://relayer", timeout=settings.http_timeout, transport=httpx.ASGITransport(app=app)
        )
        gateway = CryptoGateway(
            relayer,
            clock=chain.now,
            duration_days=settings.decrypt_duration_days,
            timeout=settings.decrypt_timeout_seconds,
        )
        dex = DexService(
            chain,
            system.swap,
            gateway,
            LocalWalletSigner(user),
            decimals=decimals,
            operator_days=settings.operator_grant_days,
        )

        await dex.mint(Asset.A, "10")
        await dex.set_operator(Asset.A, days=1 / 24)
        logger.info(f"Preview: {swap_amount} wETH -> {dex.preview(SwapDirection.FORWARD, swap_amount)} wUSDT")
        receipt = await dex.swap_tokens(SwapDirection.FORWARD, swap_amount)
        logger.info(f"Events: {[e.name for e in receipt.events]}")

        balances = {}
        for asset in Asset:
            result = await dex.decrypt_balance(asset)
            balances[dex.token(asset).symbol] = dex.format_amount(result.value if result.available else 0)
        return balances
    finally:
        await chain.close()


def build_parser() -> argparse.ArgumentParser:
    """Command line parser."""
    parser = argparse.ArgumentParser(prog="opaqueswap", description="Confidential fixed-rate swap")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser(
        "serve",
        help=(
            "Run the relayer on a fresh chain with a funded wETH/wUSDT swap deployed. "
            "Contracts live in the server process; their addresses are listed at /health/detailed"
        ),
    )

    demo = commands.add_parser("demo", help="Run an end-to-end swap in-process")
    demo.add_argument("--amount", default="1", help="wETH to swap (display units)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    if args.command == "demo":
        balances = asyncio.run(run_demo(settings, args.amount))
        for symbol, amount in balances.items():
            print(f"{symbol}: {amount}")
        return 0

    app = Application(settings)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
