"""
Scheduled Manifest Compilation Service

Background service that recompiles today's manifest for every configured
site at a fixed interval, so directives track the occupancy phase through
the day.
"""

import asyncio
import logging
from typing import Optional

from .exceptions import OpsManifestError
from .manifest import ManifestCompiler

logger = logging.getLogger(__name__)


class CompileService:
    """
    Background service for periodic manifest compilation.

    Each site is compiled in a worker thread under a timeout; one site's
    failure is logged and does not stop the others.
    """

    def __init__(
        self,
        compiler: ManifestCompiler,
        interval_minutes: float = 15,
        timeout_seconds: float = 30.0,
    ):
        self.compiler = compiler
        self.interval_minutes = interval_minutes
        self.timeout_seconds = timeout_seconds

        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self):
        """Start the compilation service."""
        if self._running:
            logger.warning("Compile service already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Compile service started (interval: {self.interval_minutes} min)")

    async def stop(self):
        """Stop the compilation service."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Compile service stopped")

    async def _run_loop(self):
        """Main loop - compiles all sites every interval."""
        while self._running:
            try:
                await self.compile_all_sites()
            except Exception as e:
                logger.error(f"Error in compile loop: {e}", exc_info=True)

            await asyncio.sleep(self.interval_minutes * 60)

    async def compile_site(self, site_id: str) -> bool:
        """Compile and store today's manifest for one site.

        Returns:
            True on success, False if the site failed or timed out
        """
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.compiler.compile_and_store, site_id),
                timeout=self.timeout_seconds,
            )
            return True
        except asyncio.TimeoutError:
            logger.error(f"Compiling {site_id} timed out after {self.timeout_seconds}s")
        except OpsManifestError as e:
            logger.error(f"Compiling {site_id} failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error compiling {site_id}: {e}", exc_info=True)
        return False

    async def compile_all_sites(self) -> dict[str, bool]:
        """Compile every configured site.

        Returns:
            Site ID -> success
        """
        site_ids = await asyncio.to_thread(self.compiler.repository.site_ids)
        results = {}
        for site_id in site_ids:
            results[site_id] = await self.compile_site(site_id)

        failed = [s for s, ok in results.items() if not ok]
        if failed:
            logger.warning(f"Compiled {len(results) - len(failed)}/{len(results)} sites, failed: {failed}")
        else:
            logger.info(f"Compiled {len(results)} site(s)")
        return results
