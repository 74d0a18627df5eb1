"""Pipeline orchestration for the story video generator."""

from __future__ import annotations

import json
import logging
import random
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence, TypedDict

from langchain_core.runnables import RunnableLambda
from langgraph.graph import END, START, StateGraph

from .batch import BatchTaskCorrelator
from .config import PipelineConfig
from .errors import RenderError, StoryPipelineError, ValidationError
from .nodes.audio import GenerateMusic, GenerateVoiceover
from .nodes.base import Node
from .nodes.export import ExportVideo
from .nodes.media import GenerateImages, GenerateVideos
from .nodes.publish import PublishVideo
from .nodes.scenes import EnhanceStoryboard, SplitScenes
from .nodes.script import GenerateScript
from .services.audio import MusicClient, SoundEffectsClient, SpeechClient
from .services.media import IMAGE_MEDIA_FIELDS, VIDEO_MEDIA_FIELDS, MediaBatchClient
from .services.publish import PublishClient
from .services.render import RenderClient
from .services.text import StoryWriterClient
from .stagesets import StageSet, stage_set_for
from .timeline import TimelineAssembler
from .types import (
    STAGE_PROGRESS,
    GenerationSettings,
    IntermediateSnapshot,
    PipelineRun,
    ProgressEvent,
    RunResult,
    Stage,
    StageEvent,
)
from .utils.events import LoggingObserver, PipelineObserver, RunLogObserver
from .utils.run_logger import RunLogger

logger = logging.getLogger(__name__)

EXPORT_PROGRESS_BEFORE_PUBLISH = 95

ProgressCallback = Callable[[ProgressEvent], None]


class GraphState(TypedDict):
    run: PipelineRun


@dataclass(slots=True)
class _RunContext:
    """Bookkeeping for one invocation of the graph."""

    snapshot: IntermediateSnapshot
    on_progress: Optional[ProgressCallback] = None
    publish_enabled: bool = False
    failed_stage: Optional[Stage] = None
    error: Optional[BaseException] = None


class StoryVideoGenerator:
    """High-level facade exposing the end-to-end generation flow."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        writer: StoryWriterClient | None = None,
        media: MediaBatchClient | None = None,
        speech: SpeechClient | None = None,
        sound_effects: SoundEffectsClient | None = None,
        music: MusicClient | None = None,
        render: RenderClient | None = None,
        publisher: PublishClient | None = None,
        observers: Iterable[PipelineObserver] | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or PipelineConfig.from_env()
        self.logger = RunLogger(base_dir=self.config.runs_dir)
        use_mock = self.config.enable_mock_generation

        # Clients are created once and reused for every run.
        self.writer = writer or StoryWriterClient(
            api_key=self.config.text_api_key,
            api_url=self.config.text_api_url,
            model=self.config.text_model,
            use_mock=use_mock,
            timeout=int(self.config.request_timeout_sec),
            cost_per_1k_tokens=self.config.text_cost_per_1k_tokens,
            max_retries=self.config.max_retries,
            retry_base_delay=self.config.retry_base_delay_sec,
        )
        self.media = media or MediaBatchClient(
            api_key=self.config.media_api_key,
            api_url=self.config.media_api_url,
            use_mock=use_mock,
        )
        self.speech = speech or SpeechClient(
            api_key=self.config.audio_api_key, api_url=self.config.audio_api_url, use_mock=use_mock
        )
        self.sound_effects = sound_effects or SoundEffectsClient(
            api_key=self.config.audio_api_key, api_url=self.config.audio_api_url, use_mock=use_mock
        )
        self.music = music or MusicClient(
            api_key=self.config.audio_api_key, api_url=self.config.audio_api_url, use_mock=use_mock
        )
        self.render = render or RenderClient(
            api_key=self.config.render_api_key,
            api_url=self.config.render_api_url,
            use_mock=use_mock,
            captions_dir=self.config.runs_dir,
            poll_interval=self.config.render_poll_interval_sec,
            max_poll_attempts=self.config.render_max_poll_attempts,
            timeout=self.config.request_timeout_sec,
            sleep=sleep,
        )
        self.publisher = publisher or PublishClient(
            api_key=self.config.publish_api_key,
            api_url=self.config.publish_api_url,
            use_mock=use_mock,
            timeout=self.config.request_timeout_sec,
        )
        if observers is None:
            self.observers: List[PipelineObserver] = [LoggingObserver(), RunLogObserver(self.logger)]
        else:
            self.observers = list(observers)
        self._rng = rng
        self._sleep = sleep

    def run(
        self,
        topic: str,
        settings: GenerationSettings | None = None,
        *,
        resume_snapshot: IntermediateSnapshot | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> RunResult:
        """Execute the pipeline and return the outcome.

        Invalid input raises ValidationError before any stage runs. Stage
        failures are reported through the result, together with the snapshot
        of the last fully completed stage.
        """
        settings = settings or GenerationSettings()
        if not topic or not topic.strip():
            raise ValidationError("Topic is required")
        settings.validate()
        if resume_snapshot is not None and resume_snapshot.completed_stage >= Stage.EXPORT:
            raise ValidationError(
                f"Snapshot already completed stage {resume_snapshot.completed_stage}; nothing to resume"
            )

        stage_set = stage_set_for(settings.story_mode)
        run_id = self._new_run_id()
        state = PipelineRun(run_id=run_id, topic=topic.strip(), settings=settings)
        if resume_snapshot is not None:
            state.restore(resume_snapshot)
            snapshot = resume_snapshot
            logger.info(
                "[%s] resuming from stage %d (%s), cost so far %.4f",
                run_id, snapshot.resume_stage, Stage(snapshot.resume_stage).label, snapshot.total_cost,
            )
        else:
            snapshot = IntermediateSnapshot.capture(state, 0)
        self.logger.save_snapshot(run_id, snapshot.to_json())

        nodes = self._build_nodes(run_id=run_id, stage_set=stage_set, start_stage=snapshot.resume_stage)
        context = _RunContext(
            snapshot=snapshot,
            on_progress=on_progress,
            publish_enabled=any(node.stage == Stage.PUBLISH and node.enabled(state) for node in nodes),
        )

        started = time.perf_counter()
        try:
            app = self._build_graph(nodes, context).compile()
            final: GraphState = app.invoke({"run": state})
            state = final["run"]
        except Exception as exc:
            return self._failure(state, context, context.error or exc, time.perf_counter() - started)

        elapsed = time.perf_counter() - started
        if not state.final_video_url:
            context.failed_stage = Stage.EXPORT
            return self._failure(state, context, RenderError("Export produced no video URL"), elapsed)

        logger.info(
            "[%s] completed in %.1fs, cost %.4f: %s", run_id, elapsed, state.total_cost, state.final_video_url
        )
        return RunResult(
            success=True,
            run=state,
            final_video_url=state.final_video_url,
            thumbnail_url=state.thumbnail_url,
            snapshot=context.snapshot,
            elapsed=elapsed,
        )

    def _build_graph(self, nodes: Sequence[Node], context: _RunContext) -> StateGraph:
        """Construct a LangGraph graph wired with runnable nodes."""
        if not nodes:
            raise RuntimeError("Pipeline has no nodes configured.")
        graph = StateGraph(GraphState)
        node_names: List[str] = []

        for node in nodes:
            graph.add_node(
                node.name,
                RunnableLambda(
                    lambda state, _node=node: {"run": self._invoke_node(_node, state["run"], context)}
                ),
                metadata={"stage": int(node.stage), "may_block": node.stage in {Stage.IMAGES, Stage.VIDEO, Stage.EXPORT}},
            )
            node_names.append(node.name)

        graph.add_edge(START, node_names[0])
        for previous, current in zip(node_names, node_names[1:]):
            graph.add_edge(previous, current)
        graph.add_edge(node_names[-1], END)
        return graph

    def _build_nodes(self, *, run_id: str, stage_set: StageSet, start_stage: int) -> Sequence[Node]:
        """Construct node instances for the stages still to run."""
        image_batches = BatchTaskCorrelator(
            self.media.submit,
            media_fields=IMAGE_MEDIA_FIELDS,
            kind="image",
            max_batch_size=self.config.max_batch_size,
            base_timeout=self.config.image_timeout_base_sec,
            per_item_timeout=self.config.image_timeout_per_item_sec,
            buffer=self.config.timeout_buffer_sec,
            inter_chunk_delay=self.config.inter_chunk_delay_sec,
            max_retries=self.config.max_retries,
            retry_base_delay=self.config.retry_base_delay_sec,
            sleep=self._sleep,
        )
        video_batches = BatchTaskCorrelator(
            self.media.submit,
            media_fields=VIDEO_MEDIA_FIELDS,
            kind="video",
            max_batch_size=self.config.max_batch_size,
            base_timeout=self.config.video_timeout_base_sec,
            per_item_timeout=self.config.video_timeout_per_item_sec,
            buffer=self.config.timeout_buffer_sec,
            inter_chunk_delay=self.config.inter_chunk_delay_sec,
            max_retries=self.config.max_retries,
            retry_base_delay=self.config.retry_base_delay_sec,
            sleep=self._sleep,
        )
        nodes: List[Node] = [
            GenerateScript(run_id=run_id, logger=self.logger, writer=self.writer, stage_set=stage_set),
            SplitScenes(run_id=run_id, logger=self.logger, writer=self.writer, stage_set=stage_set),
            EnhanceStoryboard(run_id=run_id, logger=self.logger, writer=self.writer, stage_set=stage_set),
            GenerateImages(run_id=run_id, logger=self.logger, client=self.media, correlator=image_batches),
            GenerateVideos(
                run_id=run_id,
                logger=self.logger,
                client=self.media,
                correlator=video_batches,
                stage_set=stage_set,
            ),
            GenerateVoiceover(
                run_id=run_id,
                logger=self.logger,
                speech=self.speech,
                sound_effects=self.sound_effects,
                stage_set=stage_set,
                max_retries=self.config.max_retries,
                retry_base_delay=self.config.retry_base_delay_sec,
                sleep=self._sleep,
            ),
            GenerateMusic(run_id=run_id, logger=self.logger, music=self.music, stage_set=stage_set),
            ExportVideo(
                run_id=run_id,
                logger=self.logger,
                render=self.render,
                assembler=TimelineAssembler(end_pad=self.config.end_pad_sec, rng=self._rng),
                stage_set=stage_set,
            ),
            PublishVideo(run_id=run_id, logger=self.logger, publisher=self.publisher),
        ]
        return [node for node in nodes if node.stage >= start_stage]

    def _invoke_node(self, node: Node, state: PipelineRun, context: _RunContext) -> PipelineRun:
        """Execute or skip a node, then checkpoint and report the transition."""
        stage = node.stage
        if not node.enabled(state):
            logger.info("[%s] skipping stage %d (%s)", state.run_id, stage, stage.label)
            self._complete_stage(state, stage, context, status="skipped", elapsed=0.0, cost=0.0)
            return state

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("[%s] >> input:\n%s", node.name, self._format_state(state))
        cost_before = state.total_cost
        started = time.perf_counter()
        try:
            state = node.run(state)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            if not node.fatal:
                message = f"{stage.label} failed: {exc}"
                logger.warning("[%s] %s", state.run_id, message)
                state.warnings.append(message)
                self._emit(StageEvent(state.run_id, int(stage), stage.label, "warning", elapsed, 0.0, str(exc)))
                self._complete_stage(state, stage, context, status=None, elapsed=elapsed, cost=0.0)
                return state
            context.failed_stage = stage
            context.error = exc
            self._emit(StageEvent(state.run_id, int(stage), stage.label, "failed", elapsed, 0.0, str(exc)))
            raise
        elapsed = time.perf_counter() - started
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("[%s] << output [%.2fs]:\n%s", node.name, elapsed, self._format_state(state))

        cost = round(state.total_cost - cost_before, 6)
        self._complete_stage(state, stage, context, status="completed", elapsed=elapsed, cost=cost)
        return state

    def _complete_stage(
        self,
        state: PipelineRun,
        stage: Stage,
        context: _RunContext,
        *,
        status: Optional[str],
        elapsed: float,
        cost: float,
    ) -> None:
        state.current_stage = int(stage) + 1
        context.snapshot = IntermediateSnapshot.capture(state, int(stage))
        self.logger.save_snapshot(state.run_id, context.snapshot.to_json())

        percent = STAGE_PROGRESS[stage]
        if stage == Stage.EXPORT and context.publish_enabled:
            percent = EXPORT_PROGRESS_BEFORE_PUBLISH
        if context.on_progress is not None:
            context.on_progress(ProgressEvent(stage=int(stage), label=stage.label, percent=percent))
        if status is not None:
            self._emit(StageEvent(state.run_id, int(stage), stage.label, status, elapsed, cost))

    def _failure(
        self, state: PipelineRun, context: _RunContext, error: BaseException, elapsed: float
    ) -> RunResult:
        stage = context.failed_stage
        label = stage.label if stage is not None else "Pipeline"
        if isinstance(error, StoryPipelineError):
            logger.error("[%s] failed at '%s': %s", state.run_id, label, error)
        else:
            logger.exception("[%s] unexpected error at '%s'", state.run_id, label, exc_info=error)
        result = RunResult(
            success=False,
            run=state,
            error=str(error),
            failed_stage=label,
            snapshot=context.snapshot,
            elapsed=elapsed,
        )
        logger.info("[%s] %s", state.run_id, result.summary())
        return result

    def _emit(self, event: StageEvent) -> None:
        for observer in self.observers:
            observer.on_event(event)

    @staticmethod
    def _format_state(state: PipelineRun) -> str:
        """Render the resumable part of the run, plus warnings, for debug logs."""
        view = IntermediateSnapshot.capture(state, state.current_stage).to_dict()
        view["warnings"] = list(state.warnings)
        return json.dumps(view, ensure_ascii=False, indent=2)

    @staticmethod
    def _new_run_id() -> str:
        """Return a unique, time-ordered run identifier."""
        return f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:6]}"
