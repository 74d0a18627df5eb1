"""Tests for data model validation and snapshot serialisation."""

from __future__ import annotations

import unittest

from storygen.errors import ValidationError
from storygen.stagesets import STAGE_SETS, stage_set_for
from storygen.types import (
    GenerationSettings,
    IntermediateSnapshot,
    MediaRefs,
    Mood,
    PipelineRun,
    Scene,
    Stage,
    StoryMode,
    WordTimestamp,
)


class SettingsTest(unittest.TestCase):
    def test_defaults_are_valid(self) -> None:
        GenerationSettings().validate()

    def test_invalid_values_are_reported(self) -> None:
        for settings in (
            GenerationSettings(duration=5),
            GenerationSettings(duration=121),
            GenerationSettings(music_volume=150),
            GenerationSettings(schedule_mode="scheduled"),
            GenerationSettings(schedule_mode="someday"),
        ):
            with self.subTest(settings=settings):
                with self.assertRaises(ValidationError):
                    settings.validate()

    def test_dict_round_trip_and_bad_enum(self) -> None:
        settings = GenerationSettings(duration=45, story_mode=StoryMode.TEASE_REVEAL, platforms=["tiktok"])
        self.assertEqual(GenerationSettings.from_dict(settings.to_dict()), settings)
        with self.assertRaises(ValidationError):
            GenerationSettings.from_dict({"pacing": "glacial"})

    def test_animated_requires_video_model(self) -> None:
        self.assertFalse(GenerationSettings(media_mode="animated").is_animated)


class SnapshotTest(unittest.TestCase):
    def _run(self) -> PipelineRun:
        run = PipelineRun(run_id="r1", topic="sleep better", settings=GenerationSettings())
        run.script_text = "Short script."
        run.scenes = [
            Scene(
                index=1,
                target_duration=6,
                narration="Short script.",
                mood=Mood.CURIOUS,
                media=MediaRefs(image_url="https://img/1.png", audio_url="https://audio/1.mp3"),
                actual_duration=2.4,
                word_timestamps=[WordTimestamp("Short", 0.0, 0.4), WordTimestamp("script.", 0.45, 0.9)],
            )
        ]
        run.music_url = "https://music/1.mp3"
        run.record_cost(Stage.IMAGES, 0.004)
        run.record_cost(Stage.VOICE, 0.01)
        return run

    def test_json_round_trip(self) -> None:
        snapshot = IntermediateSnapshot.capture(self._run(), completed_stage=6)

        restored = IntermediateSnapshot.from_json(snapshot.to_json())

        self.assertEqual(restored, snapshot)
        self.assertEqual(restored.resume_stage, 7)
        self.assertAlmostEqual(restored.total_cost, 0.014)

    def test_capture_is_isolated_from_later_mutation(self) -> None:
        run = self._run()
        snapshot = IntermediateSnapshot.capture(run, completed_stage=6)

        run.scenes[0].media.image_url = None
        run.scenes.append(Scene(index=2, target_duration=4))

        self.assertEqual(len(snapshot.scenes), 1)
        self.assertEqual(snapshot.scenes[0].media.image_url, "https://img/1.png")

    def test_restore_seeds_run(self) -> None:
        snapshot = IntermediateSnapshot.capture(self._run(), completed_stage=3)
        run = PipelineRun(run_id="r2", topic="sleep better", settings=GenerationSettings())

        run.restore(snapshot)

        self.assertEqual(run.current_stage, 4)
        self.assertEqual(run.script_text, "Short script.")
        self.assertEqual(run.total_cost, snapshot.total_cost)
        self.assertIsNot(run.scenes[0], snapshot.scenes[0])

    def test_invalid_snapshot_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            IntermediateSnapshot.from_dict({"scenes": []})
        with self.assertRaises(ValidationError):
            IntermediateSnapshot.from_dict({"completedStage": 12})


class StageSetTest(unittest.TestCase):
    def test_every_mode_is_registered(self) -> None:
        for mode in StoryMode:
            self.assertIs(stage_set_for(mode), STAGE_SETS[mode])
        self.assertTrue(stage_set_for("auto-asmr").sound_effects)

    def test_unknown_mode_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            stage_set_for("documentary")


if __name__ == "__main__":
    unittest.main()
