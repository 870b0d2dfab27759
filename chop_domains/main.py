"""
Chop Domains - custom domain management service.

Entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.domains import router as domains_router
from .auth import TokenVerifier
from .config import Settings, get_settings
from .db import create_engine, create_sessionmaker, init_models
from .domains import (
    CertificateManager,
    DnsRecordStore,
    DomainRegistry,
    HealthMonitor,
    VerificationEngine,
)
from .errors import DomainServiceError, InternalError, InvalidRequest
from .logging_config import setup_logging
from .providers import CloudflareProvider, DomainProvider

logger = logging.getLogger("chop_domains.main")


def build_provider(settings: Settings) -> DomainProvider:
    return CloudflareProvider(
        api_token=settings.cloudflare_api_token,
        zone_id=settings.cloudflare_zone_id,
        base_url=settings.cloudflare_api_url,
        timeout=settings.provider_timeout,
    )


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[DomainProvider] = None,
) -> FastAPI:
    """
    Build the application.

    The provider is injectable so tests and alternative deployments can swap
    the DNS/TLS backend without touching the components.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Chop Domains...")

        engine = create_engine(settings.database_url, echo=settings.debug)
        await init_models(engine)
        sessionmaker = create_sessionmaker(engine)

        owns_provider = provider is None
        domain_provider = provider or build_provider(settings)

        registry = DomainRegistry(
            sessionmaker, token_prefix=settings.verification_token_prefix
        )
        certificates = CertificateManager(
            registry, domain_provider, timeout=settings.certificate_timeout
        )

        app.state.settings = settings
        app.state.provider = domain_provider
        app.state.token_verifier = TokenVerifier(
            settings.auth_secret, algorithm=settings.auth_algorithm
        )
        app.state.domain_registry = registry
        app.state.dns_records = DnsRecordStore(sessionmaker, domain_provider)
        app.state.certificate_manager = certificates
        app.state.verification_engine = VerificationEngine(
            registry,
            domain_provider,
            certificates,
            cname_target=settings.verification_cname_target,
            file_path=settings.verification_file_path,
        )
        app.state.health_monitor = HealthMonitor(
            registry,
            domain_provider,
            certificate_warning_days=settings.certificate_warning_days,
            slow_response_ms=settings.slow_response_ms,
        )

        logger.info("Chop Domains started successfully")

        yield

        logger.info("Shutting down Chop Domains...")
        if owns_provider:
            await domain_provider.close()
        await engine.dispose()
        logger.info("Chop Domains shutdown complete")

    app = FastAPI(
        title="Chop Domains",
        description="Custom domains for Chop short links",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(domains_router)

    @app.exception_handler(DomainServiceError)
    async def domain_error_handler(request: Request, exc: DomainServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
        err = InvalidRequest(message)
        return JSONResponse(err.to_dict(), status_code=err.status_code)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception in {request.url.path}: {exc}")
        err = InternalError("Internal server error")
        return JSONResponse(err.to_dict(), status_code=err.status_code)

    @app.get("/health")
    async def health_check():
        """Liveness check."""
        return {"status": "ok"}

    return app


def run():
    """Run the server with uvicorn."""
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
