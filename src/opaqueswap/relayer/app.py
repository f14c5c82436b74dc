"""FastAPI application factory for the relayer."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from opaqueswap.chain.runtime import Chain
from opaqueswap.config import Settings, get_settings
from opaqueswap.relayer.kms import DecryptionService, InputService


def attach_chain(app: FastAPI, chain: Chain, settings: Settings) -> None:
    """Bind the services of a chain to the app."""
    app.state.chain = chain
    app.state.input_service = InputService(chain)
    app.state.decryption_service = DecryptionService(
        chain, max_duration_days=settings.max_decrypt_duration_days
    )


def create_app(chain: Optional[Chain] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the relayer application.

    Args:
        chain: Chain to serve; when omitted one is created on startup and
            closed on shutdown
        settings: Settings override (defaults to get_settings())
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        owned = None
        if getattr(app.state, "chain", None) is None:
            owned = await Chain.create(settings)
            attach_chain(app, owned, settings)
        yield
        if owned is not None:
            await owned.close()

    app = FastAPI(
        title="OpaqueSwap Relayer",
        description="Encrypted input attestation and user decryption",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if chain is not None:
        attach_chain(app, chain, settings)

    from opaqueswap.relayer import routes

    app.include_router(routes.router)

    return app
