"""Refinement session: the context object behind every host entry point."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, SecretStr

from promptgarden.config import GardenConfig, credential_from_env
from promptgarden.errors import CaseImportError, InvalidState
from promptgarden.importing import CaseFormat, CaseImporter
from promptgarden.llm import CompletionClient
from promptgarden.models import CaseSplit, Iteration, TestCase, ValidationReport
from promptgarden.refinement import (
    EngineState,
    FeedbackOutcome,
    IterationStore,
    RefinementEngine,
    RunOutcome,
    SynthesisOutcome,
)
from promptgarden.validation import ProgressCallback, SimilarityScorer, ValidationRunner

logger = logging.getLogger(__name__)


class SessionSnapshot(BaseModel):
    """Serializable state of a session, saved as JSON."""

    training: list[TestCase] = Field(default_factory=list)
    testing: list[TestCase] = Field(default_factory=list)
    iterations: list[Iteration] = Field(default_factory=list)
    template: Optional[str] = None
    active_index: int = 0
    last_report: Optional[ValidationReport] = None
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def save(self, path: Path) -> Path:
        """Save the snapshot to a file."""
        path = Path(path)
        self.saved_at = datetime.now(timezone.utc)

        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info(f"Saved session with {len(self.iterations)} iterations to {path}")
        return path

    @classmethod
    def load(cls, path: Path) -> Optional["SessionSnapshot"]:
        """Load a snapshot from a file, or None if it is missing or unreadable."""
        path = Path(path)
        if not path.exists():
            logger.debug(f"No session file found at {path}")
            return None

        try:
            with open(path) as f:
                data = json.load(f)
            snapshot = cls.model_validate(data)
            logger.info(f"Loaded session with {len(snapshot.iterations)} iterations")
            return snapshot
        except Exception as e:
            logger.warning(f"Failed to load session from {path}: {e}")
            return None


class Session:
    """
    One user's refinement session.

    Holds the provider credential, the training and testing sets, the
    iteration log and the optimized template. The credential is passed
    explicitly to every provider call instead of living in global state.

    Usage:
        async with Session(GardenConfig(), credential="...") as session:
            session.import_cases(Path("cases.csv"), training_count=3)
            await session.submit_run(0, "Write a haiku", "A 5-7-5 poem")
            await session.submit_feedback("Shorter lines", 3)
            report = await session.run_validation()
    """

    def __init__(
        self,
        config: Optional[GardenConfig] = None,
        credential: Optional[SecretStr | str] = None,
        client: Optional[CompletionClient] = None,
        importer: Optional[CaseImporter] = None,
    ):
        self.config = config or GardenConfig()
        self.credential: Optional[SecretStr] = None
        self.set_credential(credential)

        self.client = client or CompletionClient.from_config(self.config)
        self.importer = importer or CaseImporter()
        self.scorer = SimilarityScorer(self.config.similarity_metric)

        self.store = IterationStore()
        self.engine = RefinementEngine(self.client, store=self.store, config=self.config)
        self.testing_cases: list[TestCase] = []
        self.last_report: Optional[ValidationReport] = None

    @classmethod
    def from_env(cls, **overrides: Any) -> "Session":
        """Create a session configured from PROMPT_GARDEN_* variables."""
        config = GardenConfig.from_env(**overrides)
        return cls(config=config, credential=credential_from_env(config.provider))

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -- credential --------------------------------------------------------

    def set_credential(self, credential: Optional[SecretStr | str]) -> None:
        """Set or clear the provider credential used by later calls."""
        if isinstance(credential, str):
            credential = SecretStr(credential.strip()) if credential.strip() else None
        self.credential = credential

    @property
    def has_credential(self) -> bool:
        return self.credential is not None and bool(self.credential.get_secret_value())

    # -- state -------------------------------------------------------------

    @property
    def training_cases(self) -> list[TestCase]:
        return self.engine.training_cases

    @property
    def iterations(self) -> tuple[Iteration, ...]:
        return self.store.all()

    @property
    def template(self) -> Optional[str]:
        return self.engine.template

    @property
    def state(self) -> EngineState:
        return self.engine.state

    # -- cases -------------------------------------------------------------

    def import_cases(
        self,
        source: Path | str | bytes,
        training_count: int,
        format: Optional[CaseFormat | str] = None,
    ) -> CaseSplit:
        """
        Replace both case sets from a file or raw content.

        A Path is read from disk and its format inferred from the extension
        unless given. Raw str or bytes content requires an explicit format.

        Raises:
            EmptyDataset: If no valid rows were found
            InsufficientData: If there are fewer rows than training_count
            CaseImportError: If the content could not be parsed
        """
        if isinstance(source, Path):
            split = self.importer.import_file(source, training_count, format=format)
        else:
            if format is None:
                raise CaseImportError("A format is required when importing raw content")
            split = self.importer.import_cases(source, format, training_count)

        self.engine.load_cases(split.training)
        self.testing_cases = list(split.testing)
        self.last_report = None
        return split

    def select_case(self, index: int) -> TestCase:
        return self.engine.select_case(index)

    def add_training_case(self, case: Optional[TestCase] = None) -> int:
        return self.engine.add_case(case)

    def update_training_case(self, index: int, case: TestCase) -> None:
        self.engine.update_case(index, case)

    def add_testing_case(self, case: TestCase) -> int:
        """Append a custom testing case and return its index."""
        self.testing_cases.append(case)
        return len(self.testing_cases) - 1

    def remove_testing_case(self, index: int) -> TestCase:
        """Remove the testing case at index."""
        if not 0 <= index < len(self.testing_cases):
            raise InvalidState(f"No testing case at index {index}")
        return self.testing_cases.pop(index)

    # -- refinement --------------------------------------------------------

    async def submit_run(self, case_index: int, prompt: str, expected_output: str) -> RunOutcome:
        return await self.engine.submit_run(case_index, prompt, expected_output, self.credential)

    async def submit_feedback(self, feedback: str, score: int) -> FeedbackOutcome:
        return await self.engine.submit_feedback(feedback, score, self.credential)

    async def regenerate_template(self) -> SynthesisOutcome:
        return await self.engine.regenerate_template(self.credential)

    # -- validation --------------------------------------------------------

    async def run_validation(
        self,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ValidationReport:
        """
        Validate the optimized template against the testing cases.

        Raises:
            InvalidState: If there is no template or no testing case
            CredentialMissing: If no credential is set
            TransportError: If any provider call failed
        """
        if not self.template:
            raise InvalidState("Complete the training phase to generate an optimized template first")
        if not self.testing_cases:
            raise InvalidState("Add at least one testing case before running validation")

        runner = ValidationRunner(
            self.client,
            self.config,
            scorer=self.scorer,
            progress_callback=progress_callback,
        )
        report = await runner.run(
            self.testing_cases,
            self.template,
            self.store.all(),
            self.credential,
        )
        self.last_report = report
        return report

    # -- persistence -------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            training=list(self.training_cases),
            testing=list(self.testing_cases),
            iterations=list(self.store.all()),
            template=self.template,
            active_index=self.engine.active_index,
            last_report=self.last_report,
        )

    def save(self, path: Path) -> Path:
        """Save cases, iterations and template as JSON."""
        return self.snapshot().save(path)

    @classmethod
    def load(cls, path: Path, **kwargs: Any) -> "Session":
        """
        Restore a saved session. Extra keyword arguments go to Session().

        Every training case starts out IDLE again.

        Raises:
            InvalidState: If the file is missing or not a saved session
        """
        snapshot = SessionSnapshot.load(path)
        if snapshot is None:
            raise InvalidState(f"Could not load a saved session from {path}")

        session = cls(**kwargs)
        session.engine.close()
        session.store = IterationStore(snapshot.iterations)
        session.engine = RefinementEngine(
            session.client,
            store=session.store,
            training_cases=snapshot.training,
            config=session.config,
            template=snapshot.template,
        )
        if 0 < snapshot.active_index < len(snapshot.training):
            session.engine.select_case(snapshot.active_index)
        session.testing_cases = list(snapshot.testing)
        session.last_report = snapshot.last_report
        return session

    def get_cost_summary(self) -> dict[str, Any]:
        return self.client.get_cost_summary()

    async def close(self) -> None:
        self.engine.close()
        await self.client.close()
