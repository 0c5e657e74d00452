"""
Ops Manifest API Endpoints
"""

import asyncio
import os
import sys
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from loguru import logger
from pydantic import BaseModel

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.opsmanifest.exceptions import (
    ConfigurationError,
    ManifestPersistenceError,
    SiteNotFoundError,
)
from core.opsmanifest.ha_client import HAClient, HAReadingSource
from core.opsmanifest.manifest import ManifestCompiler
from core.opsmanifest.settings import AppSettings
from core.opsmanifest.site_repository import YamlSiteRepository
from core.opsmanifest.store import DeviceStateStore, ManifestStore, create_session_factory
from core.opsmanifest.time_utils import local_today

router = APIRouter()

# Set by init_services (on import, and again by tests)
settings: Optional[AppSettings] = None
ha_client: Optional[HAClient] = None
repository: Optional[YamlSiteRepository] = None
manifest_store: Optional[ManifestStore] = None
device_store: Optional[DeviceStateStore] = None
compiler: Optional[ManifestCompiler] = None


def init_services(app_settings: AppSettings) -> ManifestCompiler:
    """Build the repository, stores and compiler from settings."""
    global settings, ha_client, repository, manifest_store, device_store, compiler

    settings = app_settings
    ha_client = HAClient(settings.ha_url, settings.ha_token) if settings.ha_token else None
    repository = YamlSiteRepository(settings.sites_file)

    session_factory = create_session_factory(settings.database_url)
    manifest_store = ManifestStore(session_factory)
    device_store = DeviceStateStore(session_factory)

    compiler = ManifestCompiler(
        repository,
        reading_source=HAReadingSource(ha_client) if ha_client else None,
        manifest_store=manifest_store,
        device_store=device_store,
    )
    logger.info(
        f"Services initialized (sites: {settings.sites_file}, "
        f"readings: {'Home Assistant' if ha_client else 'sites file'})"
    )
    return compiler


init_services(AppSettings.load())


class CompileRequest(BaseModel):
    """Optional body for a compile request."""
    at: Optional[datetime] = None  # Evaluation instant for the occupancy phase


def _site_today(site_id: str) -> date:
    inputs = repository.load(site_id)
    return local_today(inputs.site.timezone)


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "Ops Manifest",
        "version": "0.1.0",
        "ha_connected": ha_client is not None,
    }


@router.get("/api/sites")
async def get_sites():
    """Get all configured sites."""
    try:
        sites = await asyncio.to_thread(repository.list_sites)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {
        "sites": [
            {
                "id": site.id,
                "name": site.name,
                "timezone": site.timezone,
                "has_coordinates": site.has_coordinates,
            }
            for site in sites
        ]
    }


@router.post("/api/manifests/{site_id}/compile")
async def compile_manifest(
    site_id: str,
    request: Optional[CompileRequest] = None,
    target_date: Optional[date] = Query(None, alias="date"),
):
    """Compile and store the manifest for a site and date (default: today, site-local)."""
    at = request.at if request else None
    try:
        manifest = await asyncio.wait_for(
            asyncio.to_thread(compiler.compile_and_store, site_id, target_date, at),
            timeout=settings.compile_timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        logger.error(f"Compile {site_id} timed out after {settings.compile_timeout_seconds}s")
        raise HTTPException(status_code=504, detail=f"Compilation timed out for {site_id}") from e
    except SiteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (ConfigurationError, ManifestPersistenceError) as e:
        logger.error(f"Compile {site_id} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e

    stored = await asyncio.to_thread(manifest_store.get, manifest.site_id, manifest.manifest_date)
    return {
        "manifest": manifest.to_document(),
        "generated_at": stored["generated_at"] if stored else None,
        "evaluated_at": manifest.evaluated_at,
        "push_status": stored["push_status"] if stored else None,
    }


@router.get("/api/manifests/{site_id}")
async def get_manifest(site_id: str, target_date: Optional[date] = Query(None, alias="date")):
    """Get the stored manifest for a site and date (default: today, site-local)."""
    try:
        if target_date is None:
            target_date = await asyncio.to_thread(_site_today, site_id)
        stored = await asyncio.to_thread(manifest_store.get, site_id, target_date)
    except SiteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    if stored is None:
        raise HTTPException(status_code=404, detail=f"No manifest for {site_id} on {target_date}")
    stored.pop("manifest_json")
    return stored


@router.get("/api/sites/{site_id}/thermostats/{device_id}/directive")
async def get_directive(site_id: str, device_id: str):
    """Get the last directive written for a thermostat."""
    directive = await asyncio.to_thread(device_store.get_directive, site_id, device_id)
    if directive is None:
        raise HTTPException(status_code=404, detail=f"No directive for {site_id}/{device_id}")
    return {"site_id": site_id, "device_id": device_id, "directive": directive}
