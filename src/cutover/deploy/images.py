"""Image pulling."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cutover.deploy.runtime import ContainerRuntime
from cutover.lib.errors import DeploymentError
from cutover.models.record import ImageMetadata

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Result of an image pull.

    Attributes:
        success: Whether the pull succeeded
        image: Pulled image metadata (success only)
        error: Failure message (failure only)
    """

    success: bool
    image: ImageMetadata | None = None
    error: str | None = None


class ImageFetcher:
    """Pulls the image for a deployment, once, without retries.

    A failed pull ends the run; rerunning the pipeline is the retry.
    """

    def __init__(self, runtime: ContainerRuntime) -> None:
        """Create a fetcher bound to a runtime."""
        self.runtime = runtime

    def fetch(self, image_reference: str) -> FetchResult:
        """Pull ``image_reference`` and capture its metadata."""
        logger.info(f"Pulling image: {image_reference}")
        try:
            image = self.runtime.pull_image(image_reference)
        except DeploymentError as e:
            logger.error(f"Failed to pull image: {image_reference}")
            return FetchResult(success=False, error=e.message)

        logger.info("Image pulled successfully")
        logger.info(
            f"Image details: {list(image.tags)} {image.created or '-'} "
            f"{image.size if image.size is not None else '-'}"
        )
        return FetchResult(success=True, image=image)
