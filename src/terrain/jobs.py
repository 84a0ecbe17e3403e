"""
Job State Machine

Cooperative scheduler driving many independent terrain jobs through the
generation phases, one phase per job per tick:

    NOT_STARTED -> SHAPE_GENERATION -> FRAGMENTATION -> SCULPTING
                -> TERRACING -> MESH_CREATION -> COMPLETE

The phase stored on a job is the next piece of work to run. A phase that
raises sets has_error and freezes the job where it failed; siblings keep
running. Errored jobs stay in the table until released, reset or swept by
release_failed().
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from common.config import (
    TerrainConfig, TerrainType, SchedulerConfig, DEFAULT_SCHEDULER_CONFIG
)
from common.mesh_ops import to_trimesh
from .buffers import WorkingBuffer, FACE_CAP, FACE_WALL
from .shapes import generate_shape
from .fragment import fragment_mesh
from .sculpt import sculpt_mesh
from .terrace import terrace_mesh, prepare_thresholds
from .materials import band_face_colors

logger = logging.getLogger(__name__)


class GenerationPhase(str, Enum):
    NOT_STARTED = "not_started"
    SHAPE_GENERATION = "shape_generation"
    FRAGMENTATION = "fragmentation"
    SCULPTING = "sculpting"
    TERRACING = "terracing"
    MESH_CREATION = "mesh_creation"
    COMPLETE = "complete"


_PHASE_ORDER = list(GenerationPhase)


def next_phase(phase: GenerationPhase) -> GenerationPhase:
    """Successor of `phase`; COMPLETE is its own successor."""
    if phase == GenerationPhase.COMPLETE:
        return phase
    return _PHASE_ORDER[_PHASE_ORDER.index(phase) + 1]


@dataclass(frozen=True)
class TerrainResult:
    """
    Finished mesh handed to the consumer.

    Arrays are flagged read-only; indices are flat triangle triples.
    """
    vertices: np.ndarray
    indices: np.ndarray
    face_bands: np.ndarray
    face_kinds: np.ndarray
    terrain_type: TerrainType
    config: TerrainConfig

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_triangles(self) -> int:
        return len(self.indices) // 3

    @property
    def triangles(self) -> np.ndarray:
        return self.indices.reshape(-1, 3)

    @property
    def n_cap_faces(self) -> int:
        return int(np.count_nonzero(self.face_kinds == FACE_CAP))

    @property
    def n_wall_faces(self) -> int:
        return int(np.count_nonzero(self.face_kinds == FACE_WALL))

    @property
    def n_bands(self) -> int:
        """Number of distinct terrace heights (at least 1)."""
        return max(len(prepare_thresholds(self.config.terrace_heights)), 1)

    def to_trimesh(self, colored: bool = True) -> "trimesh.Trimesh":
        """Wrap the buffers in a Trimesh, optionally with per-band face colours."""
        colors = None
        if colored and self.n_triangles:
            colors = band_face_colors(self.face_bands, self.face_kinds, self.n_bands)
        return to_trimesh(self.vertices, self.indices, face_colors=colors)

    @classmethod
    def from_buffer(cls, buffer: WorkingBuffer, config: TerrainConfig) -> "TerrainResult":
        n_tris = buffer.n_triangles
        bands = buffer.face_bands if buffer.face_bands is not None else np.zeros(n_tris, dtype=np.int64)
        kinds = buffer.face_kinds if buffer.face_kinds is not None else np.full(n_tris, FACE_CAP, dtype=np.int8)

        arrays = [
            np.array(buffer.vertices, dtype=np.float64),
            np.array(buffer.indices, dtype=np.int64),
            np.array(bands, dtype=np.int64),
            np.array(kinds, dtype=np.int8),
        ]
        for arr in arrays:
            arr.setflags(write=False)
        return cls(*arrays, terrain_type=config.terrain_type, config=config)


@dataclass
class JobState:
    phase: GenerationPhase = GenerationPhase.NOT_STARTED
    is_complete: bool = False
    has_error: bool = False
    error: Optional[str] = None
    result: Optional[TerrainResult] = None

    def to_dict(self) -> Dict:
        return {
            "phase": self.phase.value,
            "is_complete": self.is_complete,
            "has_error": self.has_error,
            "error": self.error,
        }


@dataclass
class GenerationJob:
    id: str
    config: TerrainConfig
    state: JobState = field(default_factory=JobState)
    buffer: Optional[WorkingBuffer] = None

    @property
    def is_active(self) -> bool:
        return not (self.state.is_complete or self.state.has_error)

    def drop_buffer(self) -> None:
        if self.buffer is not None:
            self.buffer.release()
            self.buffer = None


class TerrainScheduler:
    """
    Table of generation jobs keyed by id.

    Args:
        config: Resource limits shared by every job
        on_complete: Called with (job_id, result) when a job finishes
    """

    def __init__(
        self,
        config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
        on_complete: Optional[Callable[[str, TerrainResult], None]] = None
    ) -> None:
        self.config = config
        self.on_complete = on_complete
        self.jobs: Dict[str, GenerationJob] = {}

    # ------------------------------------------------------------------
    # Job table
    # ------------------------------------------------------------------

    def submit(self, config: TerrainConfig, job_id: Optional[str] = None) -> str:
        """Register a job in NOT_STARTED; its config is clamped first."""
        job_id = job_id or str(uuid.uuid4())
        if job_id in self.jobs:
            raise KeyError(f"Job {job_id} already exists")
        self.jobs[job_id] = GenerationJob(id=job_id, config=config.validated())
        logger.info(f"Submitted job {job_id} ({config.terrain_type.value})")
        return job_id

    def get_job(self, job_id: str) -> GenerationJob:
        try:
            return self.jobs[job_id]
        except KeyError:
            raise KeyError(f"Unknown job {job_id}") from None

    def status(self, job_id: str) -> JobState:
        return self.get_job(job_id).state

    def get_result(self, job_id: str) -> Optional[TerrainResult]:
        return self.get_job(job_id).state.result

    def job_ids(self) -> List[str]:
        return list(self.jobs)

    def active_job_ids(self) -> List[str]:
        return [job_id for job_id, job in self.jobs.items() if job.is_active]

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _run_phase(self, job: GenerationJob) -> None:
        config = job.config
        phase = job.state.phase

        if phase == GenerationPhase.SHAPE_GENERATION:
            job.buffer = generate_shape(config.terrain_type, config.sides, config.radius)
        elif phase == GenerationPhase.FRAGMENTATION:
            job.buffer = fragment_mesh(
                job.buffer, config.depth, config.terrain_type,
                radius=config.radius, max_triangles=self.config.max_triangles,
            )
        elif phase == GenerationPhase.SCULPTING:
            job.buffer = sculpt_mesh(
                job.buffer, config.terrain_type,
                seed=config.seed,
                base_frequency=config.base_frequency,
                octaves=config.octaves,
                persistence=config.persistence,
                lacunarity=config.lacunarity,
                min_height=config.min_height,
                max_height=config.max_height,
            )
        elif phase == GenerationPhase.TERRACING:
            job.buffer = terrace_mesh(job.buffer, config.terrace_heights, config.terrain_type)
        elif phase == GenerationPhase.MESH_CREATION:
            result = TerrainResult.from_buffer(job.buffer.validate(), config)
            # Result is published only once the consumer accepted it
            if self.on_complete is not None:
                self.on_complete(job.id, result)
            job.state.result = result
            job.drop_buffer()

    def advance_one_phase(self, job_id: str) -> GenerationPhase:
        """
        Perform exactly one phase of work for a job.

        Returns:
            The job's phase afterwards; unchanged if the job is complete,
            errored, or the phase failed
        """
        job = self.get_job(job_id)
        state = job.state
        if not job.is_active:
            return state.phase

        if state.phase == GenerationPhase.NOT_STARTED:
            state.phase = GenerationPhase.SHAPE_GENERATION
            return state.phase

        try:
            self._run_phase(job)
        except Exception as exc:
            logger.exception(f"Job {job_id} failed during {state.phase.value}")
            state.has_error = True
            state.error = f"{type(exc).__name__}: {exc}"
            return state.phase

        state.phase = next_phase(state.phase)
        if state.phase == GenerationPhase.COMPLETE:
            state.is_complete = True
            logger.info(f"Job {job_id} complete")
        else:
            logger.debug(f"Job {job_id} -> {state.phase.value}")
        return state.phase

    def tick(self) -> int:
        """Advance every live job by one phase; returns how many did work."""
        worked = 0
        for job_id in self.active_job_ids():
            self.advance_one_phase(job_id)
            worked += 1
        return worked

    def run_until_complete(self, max_ticks: Optional[int] = None) -> int:
        """Tick until no job is active; returns the number of ticks."""
        ticks = 0
        while self.active_job_ids():
            if max_ticks is not None and ticks >= max_ticks:
                logger.warning(f"Stopped after {ticks} ticks with {len(self.active_job_ids())} active jobs")
                break
            self.tick()
            ticks += 1
        return ticks

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def reset(self, job_id: str) -> None:
        """Return a job to NOT_STARTED, discarding its buffer, result and error."""
        job = self.get_job(job_id)
        job.drop_buffer()
        job.state = JobState()
        logger.info(f"Job {job_id} reset")

    def release(self, job_id: str) -> Optional[TerrainResult]:
        """
        Remove a job and free its buffer.

        Returns:
            The job's result, if it had one

        Raises:
            KeyError: job unknown or already released
        """
        job = self.jobs.pop(job_id, None)
        if job is None:
            raise KeyError(f"Job {job_id} unknown or already released")
        job.drop_buffer()
        logger.debug(f"Released job {job_id} in phase {job.state.phase.value}")
        return job.state.result

    def cancel(self, job_id: str) -> None:
        """Stop a job between ticks and free its buffer."""
        self.release(job_id)
        logger.info(f"Cancelled job {job_id}")

    def release_failed(self) -> List[str]:
        """Release every errored job; returns their ids."""
        failed = [job_id for job_id, job in self.jobs.items() if job.state.has_error]
        for job_id in failed:
            self.release(job_id)
        if failed:
            logger.info(f"Released {len(failed)} failed jobs")
        return failed

    def status_summary(self) -> Dict[str, int]:
        summary = {phase.value: 0 for phase in GenerationPhase}
        summary["errored"] = 0
        summary["completed"] = 0
        summary["total"] = len(self.jobs)
        for job in self.jobs.values():
            summary[job.state.phase.value] += 1
            if job.state.has_error:
                summary["errored"] += 1
            if job.state.is_complete:
                summary["completed"] += 1
        return summary
