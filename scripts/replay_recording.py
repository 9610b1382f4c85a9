"""
Replay a recorded strike sequence through the tuning engine.

Feeds a mono .npy recording block by block through the same front-end the
live tuner uses (band-pass filter, frame accumulator, engine) and prints the
readings and lock events. Useful for checking gate timing against real
drums without a microphone.

Usage:
    python scripts/replay_recording.py recording.npy [kit.json] [sample_rate]

Without a kit file, a single 14" floor tom is used.
"""

import json
import sys
from pathlib import Path

import numpy as np

from drum_tuner.audio_input import AudioSession
from drum_tuner.constants import BUFFER_SIZE, SAMPLE_RATE
from drum_tuner.engine import TuningEngine
from drum_tuner.kit import Kit, load_kit
from drum_tuner.models import Drum, DrumType
from drum_tuner.recorder import MemorySessionRecorder


def default_kit() -> Kit:
    return Kit([Drum("floor", DrumType.TOM, 14.0, 8)])


def replay(audio: np.ndarray, kit: Kit, sample_rate: int = SAMPLE_RATE, print_every: int = 5) -> dict:
    """Run a recording through the engine.

    Args:
        audio: Mono samples
        kit: Kit to tune
        sample_rate: Sample rate of the recording
        print_every: Print every n-th live reading (0 for none)

    Returns:
        Summary dict with frame count and lock events
    """
    recorder = MemorySessionRecorder()
    engine = TuningEngine(kit, recorder=recorder)
    engine.start()
    session = AudioSession(engine, sample_rate=sample_rate)

    frames = 0
    for start in range(0, len(audio), BUFFER_SIZE):
        for result in session.feed(audio[start:start + BUFFER_SIZE]):
            frames += 1
            reading = result.reading
            if result.lock is not None:
                lock = result.lock
                print(f"  {session.clock_ms / 1000:7.2f}s  LOCK {lock.drum_id} {lock.head.value} "
                      f"lug {lock.point_index + 1}: {lock.hz:.1f} Hz ({lock.cents_offset:+.1f} cents)")
            elif print_every and frames % print_every == 0:
                hz = f"{reading.hz:7.1f} Hz" if reading.hz else "     -- Hz"
                cents = f"{reading.cents_offset:+6.1f}c" if reading.cents_offset is not None else "      "
                cursor = engine.cursor
                print(f"  {session.clock_ms / 1000:7.2f}s  {hz} {cents}  rms={reading.rms:.3f}  "
                      f"{result.phase.value:<9} {cursor.drum_id}/{cursor.head.value}/{cursor.point_index + 1}")

    engine.close()
    return {
        "frames": frames,
        "duration_s": len(audio) / sample_rate,
        "locks": [
            {
                "drum": e.drum_id,
                "head": e.head.value,
                "point": e.point_index,
                "hz": round(e.hz, 2),
                "cents": round(e.cents_offset, 1),
            }
            for e in recorder.events
        ],
    }


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    recording = Path(sys.argv[1])
    kit = load_kit(sys.argv[2]) if len(sys.argv) > 2 else default_kit()
    sample_rate = int(sys.argv[3]) if len(sys.argv) > 3 else SAMPLE_RATE

    audio = np.load(recording).astype(np.float64).ravel()
    print("=" * 80)
    print(f"REPLAY {recording.name}: {len(audio) / sample_rate:.1f}s at {sample_rate} Hz")
    print("=" * 80)

    summary = replay(audio, kit, sample_rate)

    print("-" * 80)
    print(f"{summary['frames']} frames, {len(summary['locks'])} locks")
    report_file = recording.with_name(f"{recording.stem}_replay.json")
    with open(report_file, "w") as f:
        json.dump(summary, f, indent=2)
    print(f"Report saved: {report_file}")


if __name__ == "__main__":
    main()
