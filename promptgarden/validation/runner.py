"""Validation of the optimized template against held-out testing cases."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from pydantic import SecretStr

from promptgarden.config import GardenConfig
from promptgarden.errors import GardenError, InvalidState
from promptgarden.llm import CompletionClient
from promptgarden.models import Iteration, TestCase, ValidationReport, ValidationResult

from .prompts import build_execution_prompt
from .similarity import SimilarityScorer

logger = logging.getLogger(__name__)

# (completed, total, current input)
ProgressCallback = Callable[[int, int, Optional[str]], None]


class ValidationRunner:
    """
    Runs every testing case through the provider and scores the outputs.

    A run needs an optimized template; each case is sent with the
    iteration history as training examples.

    Cases are executed concurrently up to config.validation_concurrency,
    but results always come back in testing-case order. The first failed
    call cancels the remaining ones and is re-raised; no partial report is
    returned.

    Usage:
        runner = ValidationRunner(client, config)
        report = await runner.run(testing_cases, template, store.all(), credential)
        print(report.average_score)
    """

    def __init__(
        self,
        client: CompletionClient,
        config: Optional[GardenConfig] = None,
        scorer: Optional[SimilarityScorer] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.client = client
        self.config = config or GardenConfig()
        self.scorer = scorer or SimilarityScorer(self.config.similarity_metric)
        self.progress_callback = progress_callback

    def _report_progress(self, completed: int, total: int, current: Optional[str] = None) -> None:
        if self.progress_callback:
            self.progress_callback(completed, total, current)

    async def run(
        self,
        testing_cases: Sequence[TestCase],
        template: Optional[str],
        iterations: Sequence[Iteration],
        credential: Optional[SecretStr | str],
    ) -> ValidationReport:
        """
        Validate the template against every testing case.

        An empty testing set yields an empty report without any provider call.

        Raises:
            InvalidState: If there are testing cases but no template
            CredentialMissing: If no credential was supplied
            TransportError: If any provider call failed
        """
        started_at = datetime.now(timezone.utc)
        if not testing_cases:
            logger.info("No testing cases to validate")
            return ValidationReport(
                template=template or "",
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
            )

        if not template:
            raise InvalidState("Generate an optimized template before running validation")

        start_time = time.time()
        total = len(testing_cases)
        semaphore = asyncio.Semaphore(self.config.validation_concurrency)
        iterations = tuple(iterations)
        if self.config.history_window is not None:
            iterations = iterations[-self.config.history_window :]
        completed = 0

        logger.info(
            f"Validating {total} testing cases "
            f"(concurrency={self.config.validation_concurrency})"
        )

        async def validate_case(case: TestCase) -> ValidationResult:
            nonlocal completed

            async with semaphore:
                self._report_progress(completed, total, case.user_prompt)
                prompt = build_execution_prompt(case, iterations)
                actual = await self.client.complete(prompt, credential)

                completed += 1
                self._report_progress(completed, total, None)

            return ValidationResult(
                input=case.user_prompt,
                expected=case.expected_output,
                actual=actual,
                similarity_score=self.scorer.score(case.expected_output, actual),
            )

        tasks = [asyncio.create_task(validate_case(case)) for case in testing_cases]
        try:
            results = await asyncio.gather(*tasks)
        except GardenError as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error(f"Validation aborted after {completed}/{total} cases: {e}")
            raise

        report = ValidationReport(
            template=template,
            results=list(results),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Validation complete: {len(report)} cases, "
            f"average similarity {report.average_score}% "
            f"({(time.time() - start_time) * 1000:.0f}ms)"
        )
        return report
