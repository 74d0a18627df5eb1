"""Node that writes the narration script."""

from __future__ import annotations

from ..services.text import StoryWriterClient
from ..stagesets import StageSet
from ..types import PipelineRun, Stage
from .base import BaseNode


class GenerateScript(BaseNode):
    """Asks the text model for a complete script in the mode's structure."""

    stage = Stage.SCRIPT

    def __init__(self, run_id: str, logger, writer: StoryWriterClient, stage_set: StageSet) -> None:
        super().__init__(name="GenerateScript", run_id=run_id, logger=logger)
        self._writer = writer
        self._stage_set = stage_set

    def run(self, state: PipelineRun) -> PipelineRun:
        settings = state.settings
        self.log_prompt(
            f"topic: {state.topic}\nmode: {self._stage_set.mode.value}\n"
            f"duration: {settings.duration}s\nlanguage: {settings.language}"
        )
        result = self._writer.write_script(state.topic, settings, self._stage_set)
        self.log_response({"script": result.payload, "cost": result.cost})

        state.script_text = result.payload
        state.record_cost(self.stage, result.cost)
        return state
