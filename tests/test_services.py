"""Tests for provider clients with patched HTTP calls."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

from storygen.errors import (
    ProviderFatalError,
    ProviderTransientError,
    PublishError,
    RenderError,
    RenderTimeoutError,
)
from storygen.services.audio import (
    MusicClient,
    SpeechClient,
    enhance_text_with_mood,
    words_from_alignment,
)
from storygen.services.base import clean_json_text
from storygen.services.media import MediaBatchClient
from storygen.services.publish import PublishClient, build_platform_metadata
from storygen.services.render import RenderClient
from storygen.services.text import StoryWriterClient
from storygen.stagesets import stage_set_for
from storygen.types import BatchTask, GenerationSettings, MediaMode, MediaRefs, Mood, Scene, StoryMode
from storygen.utils.prompts import load_prompt


def _response(payload, status_code: int = 200) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


class RenderClientTest(unittest.TestCase):
    def _client(self, attempts: int = 3) -> RenderClient:
        return RenderClient(
            api_key="key",
            api_url="https://render.example/v1",
            use_mock=False,
            max_poll_attempts=attempts,
            sleep=lambda _: None,
        )

    @mock.patch("storygen.services.render.requests.request")
    def test_done_returns_url_after_polling(self, request: mock.Mock) -> None:
        request.side_effect = [
            _response({"response": {"id": "r-1"}}),
            _response({"response": {"status": "queued"}}),
            _response({"response": {"status": "rendering"}}),
            _response({"response": {"status": "done", "url": "https://cdn/r-1.mp4", "thumbnail": "https://cdn/r-1.jpg"}}),
        ]

        result = self._client(attempts=5).render({"timeline": {}, "output": {}})

        self.assertEqual(result.url, "https://cdn/r-1.mp4")
        self.assertEqual(result.thumbnail_url, "https://cdn/r-1.jpg")
        methods = [call.args[0] for call in request.call_args_list]
        self.assertEqual(methods, ["post", "get", "get", "get"])

    @mock.patch("storygen.services.render.requests.request")
    def test_poll_exhaustion_times_out_without_resubmitting(self, request: mock.Mock) -> None:
        request.side_effect = [_response({"id": "r-2"})] + [
            _response({"response": {"status": "rendering"}}) for _ in range(3)
        ]

        with self.assertRaises(RenderTimeoutError):
            self._client(attempts=3).render({"timeline": {}, "output": {}})
        methods = [call.args[0] for call in request.call_args_list]
        self.assertEqual(methods.count("post"), 1)
        self.assertEqual(methods.count("get"), 3)

    @mock.patch("storygen.services.render.requests.request")
    def test_no_sleep_after_last_poll(self, request: mock.Mock) -> None:
        request.side_effect = [_response({"id": "r-5"})] + [
            _response({"response": {"status": "queued"}}) for _ in range(3)
        ]
        sleeps = []
        client = RenderClient(
            api_key="key",
            api_url="https://render.example/v1",
            use_mock=False,
            poll_interval=2.0,
            max_poll_attempts=3,
            sleep=sleeps.append,
        )

        with self.assertRaises(RenderTimeoutError):
            client.render({"timeline": {}, "output": {}})
        self.assertEqual(sleeps, [2.0, 2.0])

    @mock.patch("storygen.services.render.requests.request")
    def test_failed_status_is_fatal(self, request: mock.Mock) -> None:
        request.side_effect = [
            _response({"id": "r-3"}),
            _response({"response": {"status": "failed", "error": "asset unreachable"}}),
        ]

        with self.assertRaises(RenderError) as ctx:
            self._client().render({"timeline": {}, "output": {}})
        self.assertIn("asset unreachable", str(ctx.exception))

    @mock.patch("storygen.services.render.requests.request")
    def test_done_without_url_is_fatal(self, request: mock.Mock) -> None:
        request.side_effect = [_response({"id": "r-4"}), _response({"response": {"status": "done"}})]

        with self.assertRaises(RenderError):
            self._client().render({"timeline": {}, "output": {}})

    def test_mock_caption_upload_writes_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            client = RenderClient(use_mock=True, captions_dir=tmp)
            url = client.upload_captions("run-1", "1\n00:00:00,000 --> 00:00:01,000\nhello\n")

            self.assertTrue(url.startswith("file://"))
            self.assertTrue((Path(tmp) / "run-1" / "captions.srt").exists())


class MediaClientTest(unittest.TestCase):
    @mock.patch("storygen.services.media.requests.post")
    def test_submit_merges_error_items(self, post: mock.Mock) -> None:
        post.return_value = _response(
            {
                "data": [{"taskUUID": "a", "imageURL": "https://img/a.png"}],
                "errors": [{"taskUUID": "b", "message": "Content policy violation"}],
            }
        )
        client = MediaBatchClient(api_key="key", api_url="https://media.example/v1", use_mock=False)
        tasks = [BatchTask("a", 1, {"taskType": "imageInference"}), BatchTask("b", 2, {"taskType": "imageInference"})]

        items = client.submit(tasks, timeout=120)

        self.assertEqual([item["taskUUID"] for item in items], ["a", "b"])
        self.assertEqual(items[1]["error"], "Content policy violation")
        body = post.call_args.kwargs["json"]
        self.assertEqual([task["taskUUID"] for task in body], ["a", "b"])
        self.assertEqual(post.call_args.kwargs["timeout"], 120)

    @mock.patch("storygen.services.media.requests.post")
    def test_rate_limit_becomes_transient_error(self, post: mock.Mock) -> None:
        post.return_value = _response({"error": "too many requests"}, status_code=429)
        client = MediaBatchClient(api_key="key", api_url="https://media.example/v1", use_mock=False)

        with self.assertRaises(ProviderTransientError):
            client.submit([BatchTask("a", 1, {})], timeout=10)

    def test_video_payload_uses_scene_image(self) -> None:
        settings = GenerationSettings(media_mode=MediaMode.ANIMATED, video_model="veo-3.1")
        scene = Scene(index=1, target_duration=8, video_prompt="slow pan", media=MediaRefs(image_url="https://img/1.png"))
        client = MediaBatchClient()

        payload = client.video_payload(scene, settings, generate_audio=True)

        self.assertEqual(payload["frameImages"][0]["inputImage"], "https://img/1.png")
        self.assertEqual(payload["duration"], 8)
        self.assertTrue(payload["generateAudio"])
        self.assertNotIn("generateAudio", client.video_payload(scene, settings))


class AudioClientTest(unittest.TestCase):
    def test_alignment_collapses_to_words(self) -> None:
        alignment = {
            "characters": list("hi yo"),
            "character_start_times_seconds": [0.0, 0.1, 0.2, 0.3, 0.4],
            "character_end_times_seconds": [0.1, 0.2, 0.3, 0.4, 0.5],
        }

        words = words_from_alignment(alignment)

        self.assertEqual([(w.word, w.start, w.end) for w in words], [("hi", 0.0, 0.2), ("yo", 0.3, 0.5)])

    def test_mood_enhancement(self) -> None:
        self.assertEqual(enhance_text_with_mood("Hello", Mood.WHISPER), ("[whispers] Hello", 1.0))
        self.assertEqual(enhance_text_with_mood("Hello", Mood.NEUTRAL), ("Hello", 0.5))
        text, _ = enhance_text_with_mood("Well, maybe", Mood.THOUGHTFUL)
        self.assertIn(", ...", text)

    @mock.patch("storygen.services.audio.requests.post")
    def test_speech_request_and_timestamps(self, post: mock.Mock) -> None:
        post.return_value = _response(
            {
                "audio_url": "https://audio/1.mp3",
                "duration": 1.2,
                "alignment": {
                    "characters": list("ok"),
                    "character_start_times_seconds": [0.0, 0.1],
                    "character_end_times_seconds": [0.1, 0.2],
                },
            }
        )
        client = SpeechClient(api_key="key", api_url="https://tts.example/v1", use_mock=False)

        result = client.synthesize("ok", "voice-1", Mood.EXCITED)

        self.assertEqual(result.audio_url, "https://audio/1.mp3")
        self.assertEqual(result.duration, 1.2)
        self.assertEqual([w.word for w in result.word_timestamps], ["ok"])
        body = post.call_args.kwargs["json"]
        self.assertEqual(body["text"], "[excited] ok")
        self.assertEqual(body["voice_settings"]["stability"], 0.0)

    @mock.patch("storygen.services.audio.requests.post")
    def test_non_json_body_is_a_provider_error(self, post: mock.Mock) -> None:
        response = _response({})
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        post.return_value = response
        client = SpeechClient(api_key="key", api_url="https://tts.example/v1", use_mock=False)

        with self.assertRaises(ProviderFatalError):
            client.synthesize("hello there", "voice-1", Mood.NEUTRAL)

    @mock.patch("storygen.services.audio.requests.post")
    def test_bad_duration_is_a_provider_error(self, post: mock.Mock) -> None:
        post.return_value = _response({"audio_url": "https://audio/2.mp3", "duration": "n/a"})
        client = SpeechClient(api_key="key", api_url="https://tts.example/v1", use_mock=False)

        with self.assertRaises(ProviderFatalError):
            client.synthesize("hello there", "voice-1", Mood.NEUTRAL)

    def test_mock_speech_is_deterministic(self) -> None:
        client = SpeechClient()
        first = client.synthesize("five words in this line", "v", Mood.HAPPY)
        second = client.synthesize("five words in this line", "v", Mood.HAPPY)

        self.assertEqual(first.audio_url, second.audio_url)
        self.assertEqual(first.duration, 2.0)
        self.assertEqual(len(first.word_timestamps), 5)

    def test_music_has_minimum_length(self) -> None:
        self.assertEqual(MusicClient.duration_ms_for(4.2), 10_000)
        self.assertEqual(MusicClient.duration_ms_for(31.5), 31_500)


class PublishClientTest(unittest.TestCase):
    def test_platform_metadata(self) -> None:
        metadata = build_platform_metadata(
            "morning routines",
            "Morning routines shape your day. Small routines add up over weeks.",
            ["x", "instagram"],
        )

        self.assertEqual(set(metadata), {"x", "instagram"})
        self.assertEqual(metadata["x"]["hashtags"][0], "#routines")
        self.assertLessEqual(len(metadata["x"]["caption"]), 280)
        self.assertTrue(metadata["instagram"]["caption"].startswith("Morning routines shape your day."))

    def test_unconnected_platforms_are_skipped(self) -> None:
        client = PublishClient(use_mock=True, mock_connected=["tiktok"])
        metadata = build_platform_metadata("topic", "script", ["tiktok", "youtube"])

        result = client.publish("https://cdn/video.mp4", metadata)

        self.assertEqual(list(result.platforms), ["tiktok"])
        self.assertEqual(result.skipped, ["youtube"])

    def test_no_connected_platform_raises(self) -> None:
        client = PublishClient(use_mock=True, mock_connected=[])
        with self.assertRaises(PublishError):
            client.publish("https://cdn/video.mp4", build_platform_metadata("topic", "script", ["tiktok"]))


class TextClientTest(unittest.TestCase):
    def test_clean_json_text_strips_fences(self) -> None:
        self.assertEqual(clean_json_text('```json\n{"script": "x"}\n```'), '{"script": "x"}')
        self.assertEqual(clean_json_text('Here you go: [{"a": 1}] thanks'), '[{"a": 1}]')

    def test_prompt_requires_every_placeholder(self) -> None:
        rendered = load_prompt(
            "split_scenes",
            {
                "script": "Once.",
                "duration": 30,
                "min_scenes": 3,
                "max_scenes": 10,
                "beats": "hook, payoff",
                "duration_rule": "Keep scenes short.",
            },
        )
        self.assertIn("Once.", rendered)
        self.assertNotIn("{{", rendered)
        with self.assertRaises(KeyError):
            load_prompt("split_scenes", {"script": "Once."})

    def test_mock_scenes_cover_target(self) -> None:
        writer = StoryWriterClient()
        settings = GenerationSettings(duration=30)
        stage_set = stage_set_for(StoryMode.MYTH_BUSTING)

        script = writer.write_script("cold showers", settings, stage_set).payload
        scenes = writer.split_scenes(script, settings, stage_set).payload

        self.assertEqual(len(scenes), 5)
        self.assertEqual(sum(scene["duration"] for scene in scenes), 30)
        self.assertEqual([scene["sceneNumber"] for scene in scenes], [1, 2, 3, 4, 5])

    @mock.patch("storygen.services.text.OpenAI")
    def test_real_script_call_parses_json_and_cost(self, openai_cls: mock.Mock) -> None:
        completion = mock.Mock()
        completion.choices = [mock.Mock(message=mock.Mock(content='```json\n{"script": "A short story."}\n```'))]
        completion.usage = mock.Mock(total_tokens=2000)
        openai_cls.return_value.chat.completions.create.return_value = completion
        writer = StoryWriterClient(api_key="key", use_mock=False, cost_per_1k_tokens=0.5)

        result = writer.write_script("habits", GenerationSettings(), stage_set_for("problem-solution"))

        self.assertEqual(result.payload, "A short story.")
        self.assertEqual(result.cost, 1.0)


if __name__ == "__main__":
    unittest.main()
