"""Sequences the build stages of one radio program and guarantees cleanup."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from types import TracebackType
from typing import Any

from radio_builder.config.load import PUBLISHING_KEYS, load_config
from radio_builder.config.settings import BuilderSettings
from radio_builder.exceptions import ManifestPublishError, MissingSystemAssetError
from radio_builder.storage.naming import ProgramDescriptor
from radio_builder.storage.workspace import Workspace, open_workspace
from radio_builder.utils.ffmpeg import FFmpeg
from radio_builder.utils.logging import configure_logging, get_logger, program_logger

from .assembler import AssembledProgram, ProgramAssembler
from .fetcher import RemoteFileFetcher
from .manifest import BuildResult, Manifest, describe_segments, needs_rebuild
from .mixer import SegmentMixer
from .placeholder import PlaceholderGenerator
from .planning import plan_segments
from .publisher import PublishedFile, Publisher
from .segments import (
    AssetKind,
    AssetRequest,
    BuildRequest,
    CombineWithBackground,
    Segment,
    Silence,
    Single,
)

__all__ = [
    "BuildContext",
    "BuildState",
    "PipelineOrchestrator",
    "ProgramLockRegistry",
    "build_orchestrator",
    "build_orchestrator_from_settings",
]

LOGGER = get_logger(__name__)


class BuildState(Enum):
    """Lifecycle states of a single build."""

    CHECKING = auto()
    DOWNLOADING = auto()
    MIXING = auto()
    ASSEMBLING = auto()
    PUBLISHING = auto()
    CLEANING_UP = auto()
    DONE = auto()
    FAILED = auto()


@dataclass(slots=True)
class _ProgramLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class ProgramLockRegistry:
    """Serialises builds per ``(world, program_id)``.

    Entries exist only while some thread holds or waits for them, so the registry
    does not grow with the number of programs ever built.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[tuple[str, int], _ProgramLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, world: str, program_id: int) -> Iterator[None]:
        key = (world, program_id)
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _ProgramLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]


@dataclass(slots=True)
class BuildContext:
    """Run-scoped state passed explicitly to every stage."""

    request: BuildRequest
    descriptor: ProgramDescriptor
    segments: tuple[Segment, ...]
    workspace: Workspace
    states: list[str]
    started_at: float
    inputs: list[list[Path]] = field(default_factory=list)
    processed: list[Path] = field(default_factory=list)
    program: AssembledProgram | None = None
    published: PublishedFile | None = None
    manifest: Manifest | None = None


class PipelineOrchestrator:
    """Runs CHECKING → DOWNLOADING → MIXING → ASSEMBLING → PUBLISHING → CLEANING_UP."""

    def __init__(
        self,
        settings: BuilderSettings,
        *,
        fetcher: RemoteFileFetcher,
        placeholders: PlaceholderGenerator,
        mixer: SegmentMixer,
        assembler: ProgramAssembler,
        publisher: Publisher,
        locks: ProgramLockRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher
        self.placeholders = placeholders
        self.mixer = mixer
        self.assembler = assembler
        self.publisher = publisher
        self.locks = locks or ProgramLockRegistry()
        self._clock = clock

    def __enter__(self) -> PipelineOrchestrator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self.fetcher.close()
        self.publisher.close()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def check(self, request: BuildRequest) -> tuple[bool, Manifest | None]:
        """Return whether ``request`` needs a rebuild, plus the published manifest."""
        previous = self.publisher.fetch_manifest(request.world, request.program_id)
        return needs_rebuild(request.recording_count, previous), previous

    def resolve_segments(self, request: BuildRequest) -> tuple[Segment, ...]:
        """Use the explicit segment list if given, otherwise plan one from recordings."""
        if request.segments is not None:
            return tuple(request.segments)
        return tuple(
            plan_segments(
                request.recordings,
                world=request.world,
                language=request.language,
                assets=self.settings.assets,
            )
        )

    def build(self, request: BuildRequest, *, force: bool = False) -> BuildResult:
        """Build and publish the program for ``request``; never raises for stage errors."""
        with self.locks.hold(request.world, request.program_id):
            return self._build_locked(request, force=force)

    # ------------------------------------------------------------------ #
    # Run
    # ------------------------------------------------------------------ #
    def _build_locked(self, request: BuildRequest, *, force: bool) -> BuildResult:
        started_at = self._clock()
        states: list[str] = []
        log = program_logger(LOGGER, request.world, request.program_id)
        self._enter(states, BuildState.CHECKING, request)

        try:
            descriptor = ProgramDescriptor(world=request.world, program_id=request.program_id)
            if force:
                log.info("Rebuild forced")
            else:
                rebuild, previous = self.check(request)
                if not rebuild and previous is not None:
                    self._enter(states, BuildState.DONE, request)
                    log.info("Recordings unchanged; reusing %s", previous.program_url)
                    return BuildResult(
                        success=True,
                        audio_url=previous.program_url,
                        duration_seconds=previous.duration_seconds,
                        processing_time_ms=self._elapsed_ms(started_at),
                        segment_count=previous.segment_count,
                        skipped=True,
                        manifest=previous,
                        states=states,
                    )
            segments = self.resolve_segments(request)
        except Exception as exc:  # noqa: BLE001 - run boundary
            return self._failed(request, states, started_at, exc, segment_count=0)

        error: Exception | None = None
        context: BuildContext | None = None
        try:
            with open_workspace(
                f"radio-{descriptor.slug}-", parent=self.settings.temp_dir
            ) as workspace:
                context = BuildContext(
                    request=request,
                    descriptor=descriptor,
                    segments=segments,
                    workspace=workspace,
                    states=states,
                    started_at=started_at,
                )
                try:
                    self._download(context)
                    self._mix(context)
                    self._assemble(context)
                    self._publish(context)
                except Exception as exc:  # noqa: BLE001 - run boundary
                    error = exc
                finally:
                    self._enter(states, BuildState.CLEANING_UP, request)
        except Exception as exc:  # noqa: BLE001 - workspace could not be created
            error = error or exc

        if error is not None or context is None or context.published is None:
            return self._failed(
                request,
                states,
                started_at,
                error or RuntimeError("Build did not publish a program."),
                segment_count=len(segments),
            )

        self._enter(states, BuildState.DONE, request)
        program = context.program
        return BuildResult(
            success=True,
            audio_url=context.published.url,
            duration_seconds=program.duration_seconds if program else None,
            processing_time_ms=self._elapsed_ms(started_at),
            segment_count=len(segments),
            manifest=context.manifest,
            states=states,
        )

    # ------------------------------------------------------------------ #
    # Stages
    # ------------------------------------------------------------------ #
    def _download(self, context: BuildContext) -> None:
        self._enter(context.states, BuildState.DOWNLOADING, context.request)
        requests = self._asset_requests(context)
        results = self._acquire_all([request for group in requests for request in group])

        context.inputs = []
        for index, (segment, group) in enumerate(zip(context.segments, requests)):
            if isinstance(segment, Silence):
                path = context.workspace.path_for(f"seg{index:03d}-silence.mp3")
                self.placeholders.generate_silence(path, segment.duration_seconds)
                context.inputs.append([path])
                continue
            paths = []
            for request in group:
                paths.append(self._resolve_download(request, results[request.destination]))
            context.inputs.append(paths)

    def _mix(self, context: BuildContext) -> None:
        self._enter(context.states, BuildState.MIXING, context.request)
        context.processed = []
        for index, (segment, inputs) in enumerate(zip(context.segments, context.inputs)):
            if isinstance(segment, CombineWithBackground):
                output = context.workspace.path_for(f"seg{index:03d}-mixed.mp3")
                self.mixer.combine(inputs[:-1], inputs[-1], output)
                context.processed.append(output)
            elif isinstance(segment, (Single, Silence)):
                context.processed.append(inputs[0])
            else:
                raise TypeError(f"Unknown segment variant: {type(segment).__name__}")

    def _assemble(self, context: BuildContext) -> None:
        self._enter(context.states, BuildState.ASSEMBLING, context.request)
        output = context.workspace.path_for(f"{context.descriptor.slug}-program.mp3")
        context.program = self.assembler.assemble(
            context.processed,
            output,
            world=context.request.world,
            program_id=context.request.program_id,
        )

    def _publish(self, context: BuildContext) -> None:
        self._enter(context.states, BuildState.PUBLISHING, context.request)
        request = context.request
        program = context.program
        if program is None:
            raise RuntimeError("Nothing was assembled to publish.")

        published = self.publisher.publish(program.path, request.world, request.program_id)
        context.published = published
        manifest = Manifest(
            world=request.world,
            program_id=request.program_id,
            program_url=published.url,
            file_name=published.file_name,
            file_size=published.size,
            processing_time_ms=self._elapsed_ms(context.started_at),
            segment_count=len(context.segments),
            recording_count=request.recording_count,
            segments=tuple(describe_segments(context.segments)),
            duration_seconds=program.duration_seconds,
        )
        try:
            self.publisher.publish_manifest(manifest, request.world, request.program_id)
        except ManifestPublishError as exc:
            LOGGER.warning(
                "Program %s published but its manifest was not: %s",
                published.url,
                exc,
            )
            return
        context.manifest = manifest

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _asset_requests(self, context: BuildContext) -> list[list[AssetRequest]]:
        """Return the remote files of each segment, answers before background."""
        workspace = context.workspace
        groups: list[list[AssetRequest]] = []
        for index, segment in enumerate(context.segments):
            prefix = f"seg{index:03d}"
            if isinstance(segment, Single):
                groups.append(
                    [
                        AssetRequest(
                            url=segment.url,
                            destination=workspace.path_for(f"{prefix}-{segment.kind.value}.mp3"),
                            kind=segment.kind,
                            segment_index=index,
                        )
                    ]
                )
            elif isinstance(segment, CombineWithBackground):
                group = [
                    AssetRequest(
                        url=url,
                        destination=workspace.path_for(f"{prefix}-answer{position:02d}.mp3"),
                        kind=AssetKind.ANSWER,
                        segment_index=index,
                    )
                    for position, url in enumerate(segment.answer_urls)
                ]
                group.append(
                    AssetRequest(
                        url=segment.background_url,
                        destination=workspace.path_for(f"{prefix}-background.mp3"),
                        kind=AssetKind.BACKGROUND,
                        segment_index=index,
                    )
                )
                groups.append(group)
            elif isinstance(segment, Silence):
                groups.append([])
            else:
                raise TypeError(f"Unknown segment variant: {type(segment).__name__}")
        return groups

    def _acquire_all(self, requests: Sequence[AssetRequest]) -> dict[Path, Future[Path]]:
        """Download every request concurrently and wait for all of them to settle."""
        if not requests:
            return {}
        workers = self.settings.fetch.max_parallel or len(requests)
        LOGGER.info("Downloading %d file(s) with %d worker(s)", len(requests), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch") as pool:
            futures = {
                request.destination: pool.submit(self.fetcher.acquire, request)
                for request in requests
            }
            wait(futures.values())
        return futures

    def _resolve_download(self, request: AssetRequest, future: Future[Path]) -> Path:
        try:
            return future.result()
        except MissingSystemAssetError as exc:
            LOGGER.warning(
                "%s; substituting %gs of silence", exc, exc.placeholder_seconds
            )
            self.placeholders.generate_silence(request.destination, exc.placeholder_seconds)
            return request.destination

    def _failed(
        self,
        request: BuildRequest,
        states: list[str],
        started_at: float,
        error: BaseException,
        *,
        segment_count: int,
    ) -> BuildResult:
        self._enter(states, BuildState.FAILED, request)
        message = str(error) or type(error).__name__
        log = program_logger(LOGGER, request.world, request.program_id)
        log.error("Build failed: %s", message)
        return BuildResult(
            success=False,
            processing_time_ms=self._elapsed_ms(started_at),
            segment_count=segment_count,
            error=message,
            states=states,
        )

    def _elapsed_ms(self, started_at: float) -> int:
        return max(0, int(round((self._clock() - started_at) * 1000)))

    @staticmethod
    def _enter(states: list[str], state: BuildState, request: BuildRequest) -> None:
        states.append(state.name)
        program_logger(LOGGER, request.world, request.program_id).info("%s", state.name)


def build_orchestrator(
    env: str = "dev",
    overrides: Mapping[str, Any] | None = None,
    *,
    require: Iterable[str] = PUBLISHING_KEYS,
) -> PipelineOrchestrator:
    """Wire an orchestrator from the named configuration environment.

    Publishing settings are required by default; pass ``require=()`` for read-only
    uses such as change detection.
    """
    config = load_config(env, overrides=overrides, require=require)
    logging_settings = config.get("logging")
    configure_logging(logging_settings if isinstance(logging_settings, Mapping) else None)
    return build_orchestrator_from_settings(BuilderSettings.from_config(config))


def build_orchestrator_from_settings(settings: BuilderSettings) -> PipelineOrchestrator:
    ffmpeg = FFmpeg(timeout=settings.engine_timeout_seconds)
    return PipelineOrchestrator(
        settings,
        fetcher=RemoteFileFetcher(
            settings.fetch,
            settings.encoding,
            placeholders=settings.placeholders,
            ffmpeg=ffmpeg,
        ),
        placeholders=PlaceholderGenerator(settings.encoding, ffmpeg=ffmpeg),
        mixer=SegmentMixer(settings.encoding, settings.mix, ffmpeg=ffmpeg),
        assembler=ProgramAssembler(
            settings.encoding, settings.mix, settings.metadata, ffmpeg=ffmpeg
        ),
        publisher=Publisher(settings.storage),
    )
