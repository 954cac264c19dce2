"""
Tests for the utterance pipeline: validation, transcoding, transcription,
per-language fan-out and delivery against a live registry.
"""

import base64

import pytest

from backend import Session
from pipeline import PipelineState, partition_recipients

pytestmark = pytest.mark.asyncio

AUDIO = b"\x00\x01fake-mp4-audio"


def decode(message) -> bytes:
    return base64.b64decode(message.audio)


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------


async def test_two_languages_sender_gets_transcript_listener_gets_translation(
    pipeline, room, notifier, synthesizer, translator
):
    room("s1", "en", "Alice")
    room("s2", "es", "Bob")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    transcript = notifier.sent["s1"]
    assert [m.type for m in transcript] == ["transcript"]
    assert transcript[0].text == "hello everyone"
    assert transcript[0].audio is None
    assert transcript[0].is_translation is False
    assert transcript[0].username == "Alice"

    received = notifier.sent["s2"]
    assert [m.type for m in received] == ["translated_audio"]
    assert received[0].language == "es"
    assert received[0].is_translation is True
    assert received[0].text == "[es] hello everyone"
    assert decode(received[0]) == b"mp3:es:[es] hello everyone"

    assert translator.calls == [("hello everyone", "en", "es")]
    assert synthesizer.calls == [("[es] hello everyone", "es")]


async def test_same_language_listeners_share_one_synthesis(pipeline, room, notifier, synthesizer, translator):
    room("s1", "en")
    room("s2", "en")
    room("s3", "en")

    await pipeline.process(room.code, "s1", AUDIO)

    assert synthesizer.calls == [("hello everyone", "en")]
    assert translator.calls == []
    first, second = notifier.sent["s2"][0], notifier.sent["s3"][0]
    assert first.type == second.type == "translated_audio"
    assert first.is_translation is False
    assert decode(first) == decode(second) == b"mp3:en:hello everyone"
    assert notifier.types_for("s1") == ["transcript"]


async def test_translation_runs_once_per_distinct_language(pipeline, room, notifier, synthesizer, translator):
    languages = {"s1": "en", "s2": "es", "s3": "es", "s4": "fr", "s5": "fr", "s6": "de"}
    for sid, language in languages.items():
        room(sid, language)

    await pipeline.process(room.code, "s1", AUDIO)

    assert sorted(call[2] for call in translator.calls) == ["de", "es", "fr"]
    assert sorted(call[1] for call in synthesizer.calls) == ["de", "es", "fr"]
    for sid, language in languages.items():
        if sid == "s1":
            continue
        messages = notifier.of_type(sid, "translated_audio")
        assert len(messages) == 1
        assert messages[0].language == language


async def test_sender_alone_gets_only_transcript(pipeline, room, notifier, synthesizer, translator):
    room("s1", "en")
    state = await pipeline.process(room.code, "s1", AUDIO)
    assert state is PipelineState.DELIVERED
    assert notifier.types_for("s1") == ["transcript"]
    assert synthesizer.calls == []
    assert translator.calls == []


async def test_transcription_uses_sender_language(pipeline, room, transcriber):
    room("s1", "zh-CN")
    room("s2", "en")
    await pipeline.process(room.code, "s1", AUDIO)
    assert transcriber.calls[0][1] == "zh-CN"


# ---------------------------------------------------------------------------
# Per-language failures
# ---------------------------------------------------------------------------


async def test_translation_failure_is_isolated_to_its_language(pipeline, room, notifier, translator):
    translator.fail_for = {"fr"}
    room("s1", "en", "Alice")
    room("s2", "es")
    room("s3", "fr")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert notifier.types_for("s2") == ["translated_audio"]
    assert notifier.sent["s3"] == []
    errors = notifier.of_type("s1", "error")
    assert len(errors) == 1
    assert errors[0].code == "translation_error"
    assert errors[0].language == "fr"
    assert errors[0].username == "Alice"


async def test_synthesis_failure_is_isolated_to_its_language(pipeline, room, notifier, synthesizer):
    synthesizer.fail_for = {"es"}
    room("s1", "en")
    room("s2", "es")
    room("s3", "de")

    await pipeline.process(room.code, "s1", AUDIO)

    assert notifier.sent["s2"] == []
    assert notifier.of_type("s3", "translated_audio")[0].language == "de"
    errors = notifier.of_type("s1", "error")
    assert [(e.code, e.language) for e in errors] == [("synthesis_error", "es")]


async def test_same_language_synthesis_failure_does_not_stop_translations(pipeline, room, notifier, synthesizer):
    synthesizer.fail_for = {"en"}
    room("s1", "en")
    room("s2", "en")
    room("s3", "es")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert notifier.sent["s2"] == []
    assert notifier.of_type("s3", "translated_audio")[0].language == "es"
    assert [(e.code, e.language) for e in notifier.of_type("s1", "error")] == [("synthesis_error", "en")]


async def test_unexpected_translator_error_is_isolated_to_its_language(pipeline, room, notifier, translator):
    translate = translator.translate

    async def flaky_translate(text, source_language, target_language):
        if target_language == "fr":
            raise RuntimeError("connection reset")
        return await translate(text, source_language, target_language)

    translator.translate = flaky_translate
    room("s1", "en")
    room("s2", "es")
    room("s3", "fr")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert notifier.of_type("s2", "translated_audio")[0].language == "es"
    assert notifier.sent["s3"] == []
    assert [(e.code, e.language) for e in notifier.of_type("s1", "error")] == [("translation_error", "fr")]


async def test_unexpected_synthesizer_error_is_isolated_to_its_language(pipeline, room, notifier, synthesizer):
    synthesize = synthesizer.synthesize

    async def flaky_synthesize(text, language):
        if language in ("en", "de"):
            raise RuntimeError("connection reset")
        return await synthesize(text, language)

    synthesizer.synthesize = flaky_synthesize
    room("s1", "en")
    room("s2", "en")
    room("s3", "es")
    room("s4", "de")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert notifier.sent["s2"] == []
    assert notifier.sent["s4"] == []
    assert notifier.of_type("s3", "translated_audio")[0].language == "es"
    errors = notifier.of_type("s1", "error")
    assert sorted((e.code, e.language) for e in errors) == [("synthesis_error", "de"), ("synthesis_error", "en")]


# ---------------------------------------------------------------------------
# Validation and early failures
# ---------------------------------------------------------------------------


async def test_oversized_audio_is_rejected_before_any_work(pipeline, room, notifier, transcoder, temp_dir):
    room("s1", "en")
    state = await pipeline.process(room.code, "s1", b"x" * 1025)

    assert state is PipelineState.FAILED
    assert [e.code for e in notifier.of_type("s1", "error")] == ["validation_too_large"]
    assert transcoder.transcoded == []
    assert not temp_dir.exists()


async def test_audio_at_size_limit_is_accepted(pipeline, room):
    room("s1", "en")
    assert await pipeline.process(room.code, "s1", b"x" * 1024) is PipelineState.DELIVERED


async def test_empty_audio_is_rejected(pipeline, room, notifier):
    room("s1", "en")
    assert await pipeline.process(room.code, "s1", b"") is PipelineState.FAILED
    assert [e.code for e in notifier.of_type("s1", "error")] == ["validation_empty"]


async def test_unknown_room_is_rejected(pipeline, backend, notifier):
    backend.register_session("s1")
    assert await pipeline.process("1zzzzz", "s1", AUDIO) is PipelineState.FAILED
    error = notifier.of_type("s1", "error")[0]
    assert error.code == "validation_empty"
    assert error.message == "Room not found"


async def test_non_member_is_rejected(pipeline, room, backend, notifier, transcriber):
    room("s1", "en")
    backend.register_session("outsider")

    assert await pipeline.process(room.code, "outsider", AUDIO) is PipelineState.FAILED
    error = notifier.of_type("outsider", "error")[0]
    assert error.message == "Not a member of this room"
    assert transcriber.calls == []
    assert notifier.sent["s1"] == []


async def test_transcode_failure_cleans_up(pipeline, room, notifier, transcoder, transcriber, temp_dir):
    transcoder.fail = True
    room("s1", "en")

    assert await pipeline.process(room.code, "s1", AUDIO) is PipelineState.FAILED
    assert [e.code for e in notifier.of_type("s1", "error")] == ["transcode_error"]
    assert transcriber.calls == []
    assert list(temp_dir.iterdir()) == []


async def test_long_audio_is_rejected_after_duration_check(pipeline, room, notifier, transcoder, transcriber, temp_dir):
    transcoder.duration = 61.0
    room("s1", "en")
    room("s2", "es")

    assert await pipeline.process(room.code, "s1", AUDIO) is PipelineState.FAILED
    assert [e.code for e in notifier.of_type("s1", "error")] == ["duration_exceeded"]
    assert transcriber.calls == []
    assert notifier.sent["s2"] == []
    assert list(temp_dir.iterdir()) == []


async def test_transcription_failure(pipeline, room, notifier, transcriber, translator):
    transcriber.fail = True
    room("s1", "en")
    room("s2", "es")

    assert await pipeline.process(room.code, "s1", AUDIO) is PipelineState.FAILED
    assert [e.code for e in notifier.of_type("s1", "error")] == ["transcription_failed"]
    assert translator.calls == []


async def test_blank_transcript_is_an_error(pipeline, room, notifier, transcriber, synthesizer):
    transcriber.transcript = "   "
    room("s1", "en")
    room("s2", "en")

    assert await pipeline.process(room.code, "s1", AUDIO) is PipelineState.FAILED
    assert [e.code for e in notifier.of_type("s1", "error")] == ["transcription_empty_result"]
    assert synthesizer.calls == []
    assert notifier.sent["s2"] == []


async def test_unexpected_exception_becomes_generic_error(pipeline, room, notifier, transcoder, temp_dir):
    async def broken_duration(path):
        raise RuntimeError("duration lookup exploded")

    transcoder.get_duration = broken_duration
    room("s1", "en")

    assert await pipeline.process(room.code, "s1", AUDIO) is PipelineState.FAILED
    error = notifier.of_type("s1", "error")[0]
    assert error.code == "utterance_error"
    assert "exploded" not in error.message
    assert list(temp_dir.iterdir()) == []


async def test_temp_files_are_removed_after_success(pipeline, room, temp_dir, transcoder):
    room("s1", "en")
    room("s2", "es")
    await pipeline.process(room.code, "s1", AUDIO)
    assert len(transcoder.transcoded) == 1
    assert list(temp_dir.iterdir()) == []


# ---------------------------------------------------------------------------
# Membership changes while the pipeline is suspended
# ---------------------------------------------------------------------------


async def test_listener_leaving_mid_pipeline_receives_nothing(pipeline, room, backend, notifier, transcriber, translator):
    room("s1", "en")
    room("s2", "es")
    transcriber.during_call = lambda: backend.leave("s2")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert notifier.sent["s2"] == []
    assert translator.calls == []
    assert notifier.types_for("s1") == ["transcript"]
    assert "member_list" not in notifier.types_for("s1")


async def test_listener_joining_mid_pipeline_is_included(pipeline, room, notifier, transcriber):
    room("s1", "en")
    transcriber.during_call = lambda: room("late", "fr")

    await pipeline.process(room.code, "s1", AUDIO)

    assert notifier.of_type("late", "translated_audio")[0].language == "fr"


async def test_sender_leaving_mid_pipeline_gets_no_transcript(pipeline, room, backend, notifier, transcriber):
    room("s1", "en")
    room("s2", "en")
    transcriber.during_call = lambda: backend.leave("s1")

    await pipeline.process(room.code, "s1", AUDIO)

    assert notifier.sent["s1"] == []
    assert notifier.of_type("s2", "translated_audio")[0].text == "hello everyone"


async def test_room_deleted_mid_pipeline(pipeline, room, backend, notifier, transcriber):
    room("s1", "en")
    transcriber.during_call = lambda: backend.leave("s1")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert not backend.room_exists(room.code)
    assert notifier.sent["s1"] == []


async def test_listener_leaving_during_translation_receives_nothing(
    pipeline, room, backend, notifier, translator
):
    room("s1", "en")
    room("s2", "es")
    room("s3", "es")
    translator.during_call = lambda: backend.unregister_session("s2")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert notifier.sent["s2"] == []
    assert notifier.of_type("s3", "translated_audio")[0].language == "es"
    assert notifier.of_type("s1", "error") == []


async def test_listener_leaving_during_same_language_synthesis_receives_nothing(
    pipeline, room, backend, notifier, synthesizer
):
    room("s1", "en")
    room("s2", "en")
    room("s3", "en")
    synthesizer.during_call = lambda: backend.unregister_session("s2")

    state = await pipeline.process(room.code, "s1", AUDIO)

    assert state is PipelineState.DELIVERED
    assert notifier.sent["s2"] == []
    assert notifier.of_type("s3", "translated_audio")[0].text == "hello everyone"
    assert notifier.of_type("s1", "error") == []


async def test_disconnected_listener_does_not_block_others(pipeline, room, notifier):
    room("s1", "en")
    room("s2", "es")
    room("s3", "es")
    notifier.disconnected.add("s2")

    await pipeline.process(room.code, "s1", AUDIO)

    assert notifier.types_for("s3") == ["translated_audio"]


# ---------------------------------------------------------------------------
# partition_recipients
# ---------------------------------------------------------------------------


async def test_partition_recipients_groups_by_language():
    members = [
        Session("a", "A", "es", "1abcde"),
        Session("b", "B", "en", "1abcde"),
        Session("c", "C", "fr", "1abcde"),
        Session("d", "D", "es", "1abcde"),
    ]
    same, targets = partition_recipients("en", members)
    assert [m.session_id for m in same] == ["b"]
    assert targets == ["es", "fr"]


async def test_partition_recipients_empty():
    assert partition_recipients("en", []) == ([], [])
