"""
REST API for custom domain management.

Every route is scoped to the owner named by the bearer token; domains owned
by someone else answer 404 exactly like missing ones.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..errors import DomainNotFound

logger = logging.getLogger("chop_domains.api.domains")

router = APIRouter(prefix="/domains", tags=["domains"])

security = HTTPBearer(auto_error=False)


# ── Auth dependency ──────────────────────────────────────────────────

async def get_current_owner(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Extract and verify the owner id from the JWT Bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_verifier = request.app.state.token_verifier
    try:
        return token_verifier.owner_id(credentials.credentials)
    except ValueError as e:
        raise HTTPException(
            status_code=401,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ── Request / Response models ────────────────────────────────────────

class DomainSettingsBody(BaseModel):
    redirect_mode: Optional[str] = None
    custom_nameservers: Optional[str] = None
    force_ssl: Optional[bool] = None


class DomainCreateRequest(BaseModel):
    hostname: str
    verification_method: Optional[str] = None
    settings: Optional[DomainSettingsBody] = None


class DomainUpdateRequest(BaseModel):
    verification_method: Optional[str] = None
    is_active: Optional[bool] = None
    settings: Optional[DomainSettingsBody] = None


class DnsRecordCreateRequest(BaseModel):
    type: str
    name: str
    content: str
    ttl: Optional[int] = None
    priority: Optional[int] = None
    proxied: bool = False


# ── Domains ──────────────────────────────────────────────────────────

@router.get("")
async def list_domains(
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """List all custom domains for the authenticated owner."""
    domains = await request.app.state.domain_registry.list_for_owner(owner_id)
    return {
        "count": len(domains),
        "domains": [d.to_api_response() for d in domains],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_domain(
    body: DomainCreateRequest,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Register a new custom domain and return its verification challenge."""
    registry = request.app.state.domain_registry
    verification = request.app.state.verification_engine

    kwargs = {}
    if body.verification_method is not None:
        kwargs["verification_method"] = body.verification_method
    settings = body.settings.model_dump(exclude_unset=True) if body.settings else None

    domain = await registry.add(owner_id, body.hostname, settings=settings, **kwargs)
    domain_settings = await registry.get_settings(domain.id)

    return {
        **domain.to_api_response(),
        "settings": domain_settings.to_api_response() if domain_settings else None,
        "instructions": verification.instructions(domain),
    }


@router.get("/{domain_id}")
async def get_domain(
    domain_id: int,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Get a domain with its settings."""
    found = await request.app.state.domain_registry.get_with_settings(
        domain_id, owner_id
    )
    if found is None:
        raise DomainNotFound()

    domain, domain_settings = found
    resp = {**domain.to_api_response(), "settings": domain_settings.to_api_response()}
    if not domain.is_verified:
        resp["instructions"] = request.app.state.verification_engine.instructions(domain)
    return resp


@router.patch("/{domain_id}")
async def update_domain(
    domain_id: int,
    body: DomainUpdateRequest,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Update the verification method, active flag or settings."""
    registry = request.app.state.domain_registry
    domain = await registry.update(
        domain_id, owner_id, body.model_dump(exclude_unset=True)
    )
    if domain is None:
        raise DomainNotFound()

    domain_settings = await registry.get_settings(domain.id)
    return {**domain.to_api_response(), "settings": domain_settings.to_api_response()}


@router.delete("/{domain_id}")
async def delete_domain(
    domain_id: int,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Delete a domain, its settings and its DNS records."""
    records = await request.app.state.domain_registry.delete(domain_id, owner_id)
    await request.app.state.dns_records.release(records)
    return {"deleted": True, "id": domain_id}


@router.post("/{domain_id}/verify")
async def verify_domain(
    domain_id: int,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Run the domain's ownership challenge once."""
    verified = await request.app.state.verification_engine.verify(domain_id, owner_id)
    domain = await request.app.state.domain_registry.get(domain_id, owner_id)
    return {
        "verified": verified,
        "domain": domain.to_api_response() if domain else None,
    }


# ── DNS records ──────────────────────────────────────────────────────

@router.get("/{domain_id}/dns")
async def list_dns_records(
    domain_id: int,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    records = await request.app.state.dns_records.list(domain_id, owner_id)
    return {
        "count": len(records),
        "records": [r.to_api_response() for r in records],
    }


@router.post("/{domain_id}/dns", status_code=status.HTTP_201_CREATED)
async def add_dns_record(
    domain_id: int,
    body: DnsRecordCreateRequest,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Create a DNS record at the provider and store it."""
    record = await request.app.state.dns_records.add(
        domain_id, owner_id, body.model_dump()
    )
    return record.to_api_response()


@router.delete("/{domain_id}/dns/{record_id}")
async def delete_dns_record(
    domain_id: int,
    record_id: int,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    await request.app.state.dns_records.delete(record_id, domain_id, owner_id)
    return {"deleted": True, "id": record_id}


# ── Certificates ─────────────────────────────────────────────────────

@router.get("/{domain_id}/ssl/status")
async def get_ssl_status(
    domain_id: int,
    request: Request,
    refresh: bool = False,
    owner_id: str = Depends(get_current_owner),
):
    """Stored certificate status, optionally re-read from the provider."""
    if refresh:
        current = await request.app.state.certificate_manager.refresh(
            domain_id, owner_id
        )
        return {"status": current.value}

    domain = await request.app.state.domain_registry.get(domain_id, owner_id)
    if domain is None:
        raise DomainNotFound()
    return {"status": domain.certificate_status.value}


@router.post("/{domain_id}/ssl/renew", status_code=status.HTTP_202_ACCEPTED)
async def renew_ssl(
    domain_id: int,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Renew the certificate of a verified domain."""
    outcome = await request.app.state.certificate_manager.renew(domain_id, owner_id)
    return {"status": outcome.value}


# ── Health ───────────────────────────────────────────────────────────

@router.get("/{domain_id}/health")
async def check_health(
    domain_id: int,
    request: Request,
    owner_id: str = Depends(get_current_owner),
):
    """Run live DNS, certificate and HTTPS checks for a domain."""
    report = await request.app.state.health_monitor.check(domain_id, owner_id)
    return report.to_api_response()
