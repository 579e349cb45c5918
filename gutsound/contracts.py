"""
GutSound Stage Contracts

Formal stage contracts, centralized validation, and the execution context
handed to each stage.

This module provides:
- StageContract: Frozen, declarative contract for a stage
- StageContext: Immutable execution context snapshot
- Stage: Abstract base class for all stages
- StageValidator: Centralized input validation
- ValidationError: Structured validation failure

INVARIANTS:
- Contracts are frozen and immutable
- Validation happens before stage execution
- Stages do NOT validate their own inputs
- Stages do NOT mutate context
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from gutsound.config import DEFAULT_CONFIG, AnalysisConfig
from gutsound.context import RunOptions
from gutsound.filters import FilterCache


PIPELINE_VERSION = "1.0.0"


# =============================================================================
# StageContract
# =============================================================================


@dataclass(frozen=True)
class StageContract:
    """
    Frozen contract declaring what a stage requires and produces.

    Attributes:
        name: Stage identifier (e.g., "ingest", "events")
        requires: Artifact roles required to run (e.g., {"audio/original"})
        produces: Artifact roles this stage may create
        version: Semantic version for reproducibility
    """
    name: str
    requires: frozenset[str]
    produces: frozenset[str]
    version: str


# =============================================================================
# StageContext
# =============================================================================


@dataclass(frozen=True)
class StageContext:
    """
    Immutable snapshot of execution context passed to stages.

    Attributes:
        job_id: Unique job identifier
        input_audio: Path to the canonical input recording
        workspace: Path to job workspace directory
        artifacts: All artifacts produced by prior stages
        pipeline_version: Version of the pipeline
        config: Analysis thresholds for this run
        options: Per-run options (patient, history, intervention)
        cache: Filter cache shared by every stage of the run
    """
    job_id: str
    input_audio: Path
    workspace: Path
    artifacts: tuple[dict, ...]
    pipeline_version: str = PIPELINE_VERSION
    config: AnalysisConfig = DEFAULT_CONFIG
    options: RunOptions = field(default_factory=RunOptions)
    cache: FilterCache = field(default_factory=FilterCache)

    def stage_dir(self, name: str) -> Path:
        return self.workspace / name


# =============================================================================
# Stage
# =============================================================================


class Stage(ABC):
    """
    Abstract base class for all pipeline stages.

    Subclasses define a `contract` class attribute and implement `run(ctx)`
    returning the artifact refs they created.
    """

    contract: StageContract

    @abstractmethod
    def run(self, ctx: StageContext) -> list[dict]:
        """
        Execute the stage.

        Args:
            ctx: Immutable execution context

        Returns:
            Newly created artifact refs; roles must be a subset of
            contract.produces.
        """
        ...


# =============================================================================
# ValidationError
# =============================================================================


class ValidationError(Exception):
    """
    Raised when stage input validation fails.

    Attributes:
        stage: Name of the stage that failed validation
        missing_roles: Roles required but not available
        available_roles: Roles that were available
        type_errors: Role/type compatibility errors
    """

    def __init__(
        self,
        stage: str,
        missing_roles: set[str],
        available_roles: set[str],
        type_errors: list[str],
    ):
        self.stage = stage
        self.missing_roles = missing_roles
        self.available_roles = available_roles
        self.type_errors = type_errors

        parts = [f"Validation failed for stage '{stage}'"]
        if missing_roles:
            parts.append(f"Missing roles: {sorted(missing_roles)}")
            parts.append(f"Available roles: {sorted(available_roles)}")
        if type_errors:
            parts.append(f"Type errors: {type_errors}")

        super().__init__("; ".join(parts))


# =============================================================================
# StageValidator
# =============================================================================


class StageValidator:
    """
    Validates that stage inputs satisfy contract requirements.

    Validation checks:
        1. All required artifact roles exist in available artifacts
        2. Role/type compatibility:
           - audio/* -> type must start with "audio/"
           - metadata/* -> type must be "application/json"
    """

    def validate(self, contract: StageContract, available_artifacts: list[dict]) -> None:
        """
        Raises:
            ValidationError: If validation fails
        """
        available_roles = {a["role"] for a in available_artifacts}
        missing_roles = contract.requires - available_roles

        type_errors: list[str] = []
        for artifact in available_artifacts:
            role = artifact["role"]
            artifact_type = artifact["type"]
            if role.startswith("audio/") and not artifact_type.startswith("audio/"):
                type_errors.append(
                    f"Role '{role}' has type '{artifact_type}', expected type starting with 'audio/'"
                )
            elif role.startswith("metadata/") and artifact_type != "application/json":
                type_errors.append(
                    f"Role '{role}' has type '{artifact_type}', expected 'application/json'"
                )

        if missing_roles or type_errors:
            raise ValidationError(
                stage=contract.name,
                missing_roles=missing_roles,
                available_roles=available_roles,
                type_errors=type_errors,
            )
