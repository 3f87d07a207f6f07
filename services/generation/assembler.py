"""
Result assembly: turns a Succeeded outcome into the caller's GenerationResult.
"""

import logging
from typing import Optional

from core.errors import MissingArtifactError

from .adapters.base import ProviderAdapter
from .models import MIME_TYPES, GenerationResult, MediaKind, PreparedRequest, Succeeded, TaskHandle
from .progress import JobReporter, Phase, ProgressPlan

logger = logging.getLogger(__name__)


class ResultAssembler:
    """Downloads the artifact and builds the result with normalized usage."""

    def __init__(self, adapter: ProviderAdapter, reporter: JobReporter, plan: Optional[ProgressPlan] = None):
        self.adapter = adapter
        self.reporter = reporter
        self.plan = plan or adapter.progress_plan

    async def assemble(
        self,
        prepared: PreparedRequest,
        handle: TaskHandle,
        outcome: Succeeded,
    ) -> GenerationResult:
        """
        Fetch the artifact for a succeeded task.

        Raises:
            MissingArtifactError: Provider reported success without a locator
            DownloadError: Artifact could not be fetched
        """
        kind = self.adapter.media_kind.value
        if outcome.locator is None:
            raise MissingArtifactError(
                f"No {kind} URL in response",
                provider=self.adapter.provider,
            )

        self.reporter.emit(self.plan.download, Phase.DOWNLOADING, f"Downloading {kind}...")
        logger.info(f"Downloading {kind} from: {outcome.locator.describe()}")
        content = await self.adapter.fetch_artifact(outcome.locator)

        usage = self.adapter.normalize_usage(prepared, outcome)
        self.reporter.emit(self.plan.downloaded, Phase.DOWNLOADING, f"{kind.capitalize()} generation completed")

        duration = usage.video_seconds if self.adapter.media_kind == MediaKind.VIDEO else 0.0
        return GenerationResult(
            content=content,
            mime_type=MIME_TYPES[self.adapter.media_kind],
            duration_seconds=duration,
            usage=usage,
            job_id=self.reporter.job_id,
            provider=self.adapter.provider,
            model=self.adapter.model_id,
            task_id=handle.task_id,
        )
