"""Speech rendering of script segments via edge-tts, with pauses from prosody markup."""

import asyncio
import os
import tempfile
import time

import edge_tts
from pydub import AudioSegment

from emcee_producer.constants import NARRATOR_VOICE, TTS_RATE, TTS_RETRY_BASE_DELAY, TTS_RETRY_COUNT
from emcee_producer.models import ScriptSegment
from emcee_producer.prosody import speech_runs


def generate_single(text: str, voice: str, output_path: str, rate: str = TTS_RATE) -> None:
    """Generate a single TTS clip with retry logic.

    Sync wrapper around edge_tts.Communicate(). Retries on network errors,
    HTTP errors, or 0-byte output files. Rate is a relative string like "-10%".
    """
    last_error = None
    for attempt in range(TTS_RETRY_COUNT):
        try:
            communicate = edge_tts.Communicate(text, voice, rate=rate)
            asyncio.run(communicate.save(output_path))

            # Validate output: 0-byte file counts as failure
            if os.path.exists(output_path) and os.path.getsize(output_path) > 0:
                return

            # 0-byte file, treat as failure
            last_error = Exception(f"TTS produced 0-byte file for: {text[:50]}...")
        except Exception as e:
            last_error = e

        # Exponential backoff
        if attempt < TTS_RETRY_COUNT - 1:
            delay = TTS_RETRY_BASE_DELAY * (2 ** attempt)
            time.sleep(delay)

    raise last_error


def render_markup(content: str, voice: str, output_path: str, rate: str = TTS_RATE) -> None:
    """Speak each text run and join runs with the silence the markup asks for.

    Content that is only markup renders as silence.
    """
    runs = speech_runs(content)
    audio = AudioSegment.empty()
    with tempfile.TemporaryDirectory() as work_dir:
        for i, (text, silence_ms) in enumerate(runs):
            if text:
                clip_path = os.path.join(work_dir, f"run_{i:03d}.mp3")
                generate_single(text, voice, clip_path, rate=rate)
                audio += AudioSegment.from_mp3(clip_path)
            if silence_ms:
                audio += AudioSegment.silent(duration=silence_ms)

    audio.export(output_path, format="mp3")


def segment_filename(segment: ScriptSegment) -> str:
    """Filename for a rendered script segment, sorted by flat order."""
    return f"{segment.order:07d}_{segment.segment_type}.mp3"


def render_segments(
    segments: list[ScriptSegment],
    output_dir: str,
    voice: str = NARRATOR_VOICE,
    on_start=None,
) -> list[tuple[ScriptSegment, str | None, Exception | None]]:
    """Render segments to output_dir, one MP3 each.

    Returns (segment, path, error) per segment; a failed segment does not
    stop the rest. A segment whose recorded audio_path is this file, still
    present and non-empty, is kept as is. Prints progress counter.
    """
    total = len(segments)
    outcomes = []

    for i, seg in enumerate(segments):
        filename = segment_filename(seg)
        output_path = os.path.join(output_dir, filename)

        # Resume only audio recorded for this content; edits clear audio_path
        if seg.audio_path == output_path and os.path.exists(output_path) and os.path.getsize(output_path) > 0:
            print(f"  [skip] Segment {i + 1}/{total}: {filename}")
            outcomes.append((seg, output_path, None))
            continue

        print(f"  Rendering segment {i + 1}/{total}: {filename}")
        if on_start is not None:
            on_start(seg)
        try:
            render_markup(seg.content, voice, output_path)
        except Exception as e:
            outcomes.append((seg, None, e))
            continue
        outcomes.append((seg, output_path, None))

    return outcomes
