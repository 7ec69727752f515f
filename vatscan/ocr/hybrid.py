"""Concurrent OCR runner.

Runs every configured engine on the same image in worker threads, each with
its own timeout. A timed-out or crashing engine becomes a failed OCRResult
and never blocks the others.
"""

import asyncio
import logging
import time
from pathlib import Path

from vatscan.api.metrics import ocr_duration_seconds, ocr_requests_total
from vatscan.ocr.base import OCRResult, OCRService
from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)


class HybridOCRService:
    """Runs several OCR engines concurrently on one image."""

    def __init__(self, settings: Settings, engines: list[OCRService]) -> None:
        """Initialize the runner.

        Args:
            settings: Application settings (per-engine timeout)
            engines: Engines to run; order has no effect on the result
        """
        self.settings = settings
        self.engines = engines

    def is_available(self) -> bool:
        return any(engine.is_available() for engine in self.engines)

    async def _run_engine(self, engine: OCRService, image_path: Path) -> OCRResult:
        name = engine.engine_name
        timeout = self.settings.ocr_timeout_seconds
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(engine.extract_text, image_path), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"OCR engine {name} timed out after {timeout}s")
            result = OCRResult(
                text="",
                success=False,
                error=f"OCR engine {name} timed out after {timeout}s",
                engine=name,
            )
        except Exception as e:
            logger.error(f"OCR engine {name} crashed: {e}")
            result = OCRResult(
                text="", success=False, error=f"OCR engine {name} failed: {e}", engine=name
            )

        ocr_duration_seconds.labels(engine=name).observe(time.perf_counter() - start)
        ocr_requests_total.labels(engine=name, status="success" if result.success else "error").inc()
        if result.engine is None:
            result = result.model_copy(update={"engine": name})
        return result

    async def recognize(self, image_path: Path) -> list[OCRResult]:
        """Recognize an image with every engine concurrently.

        Args:
            image_path: Path to image file

        Returns:
            One OCRResult per engine, in engine order; failures included
        """
        results = await asyncio.gather(
            *(self._run_engine(engine, image_path) for engine in self.engines)
        )
        succeeded = [r.engine for r in results if r.success]
        logger.info(f"OCR finished for {image_path.name}: succeeded={succeeded}")
        return list(results)
