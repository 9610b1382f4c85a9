"""
Console drum tuner using the default microphone.

Prints a live readout for the lug under the cursor and announces each lock.
Type a command and press Enter to steer the session:

    n / p      next / previous drum
    h          switch head
    <number>   jump to lug (1-based)
    r          reset the current head
    q          quit

Usage:
    python scripts/live_tuner.py [kit.json] [data_dir]

Settings are read from <data_dir>/settings.json, progress is kept in
<data_dir>/progress.json and locks are appended to <data_dir>/sessions.csv.
"""

import sys
import threading
import time
from pathlib import Path

from drum_tuner.audio_input import AudioSession, list_input_devices
from drum_tuner.engine import FrameResult, TuningEngine
from drum_tuner.errors import DrumTunerError, NoInputDeviceError
from drum_tuner.kit import Kit, load_kit
from drum_tuner.logging_utils import log_event
from drum_tuner.models import Drum, DrumType, Head
from drum_tuner.progress import JsonProgressStore
from drum_tuner.recorder import CsvSessionRecorder
from drum_tuner.settings import load_settings

# Readout refresh interval (seconds)
READOUT_INTERVAL = 0.15


def default_kit() -> Kit:
    return Kit([
        Drum("kick", DrumType.KICK, 22.0, 10),
        Drum("snare", DrumType.SNARE, 14.0, 10),
        Drum("rack", DrumType.TOM, 12.0, 6),
        Drum("floor", DrumType.TOM, 16.0, 8),
    ])


class ConsoleReadout:
    """Throttled single-line readout."""

    def __init__(self, engine: TuningEngine):
        self.engine = engine
        self._last_print = 0.0

    def on_frame(self, result: FrameResult):
        if result.lock is not None:
            lock = result.lock
            drum = self.engine.kit.get(lock.drum_id)
            print(f"\n  LOCKED {drum.label} {lock.head.value} lug {lock.point_index + 1}: "
                  f"{lock.hz:.1f} Hz ({lock.cents_offset:+.1f} cents)")
            return

        now = time.monotonic()
        if now - self._last_print < READOUT_INTERVAL:
            return
        self._last_print = now

        cursor = self.engine.cursor
        if cursor is None:
            return
        reading = result.reading
        drum = self.engine.kit.get(cursor.drum_id)
        target = f"{reading.target_hz:.1f}" if reading.target_hz else "--"
        if reading.hz is None:
            detail = "listening..."
        else:
            bar = meter(reading.cents_offset, self.engine.settings.lock_window_cents)
            detail = f"{reading.hz:6.1f} Hz {reading.note:<4} {reading.cents_offset:+6.1f}c {bar}"
        print(f"\r{drum.label:<12} {cursor.head.value:<6} lug {cursor.point_index + 1:>2}  "
              f"target {target:>6} Hz  {detail:<48}", end="", flush=True)


def meter(cents: float | None, window: float, width: int = 21) -> str:
    """Text meter with the lock window marked."""
    if cents is None:
        return " " * (width + 2)
    span = 50.0
    pos = int(round((max(-span, min(span, cents)) + span) / (2 * span) * (width - 1)))
    cells = ["-"] * width
    centre = width // 2
    cells[centre] = "|"
    cells[pos] = "#" if abs(cents) <= window else "o"
    return "[" + "".join(cells) + "]"


def command_loop(engine: TuningEngine, stop_event: threading.Event):
    """Read override commands from stdin."""
    while not stop_event.is_set():
        line = sys.stdin.readline()
        if not line:
            stop_event.set()
            break
        cmd = line.strip().lower()
        try:
            if cmd == "q":
                stop_event.set()
            elif cmd == "n":
                engine.next_drum()
            elif cmd == "p":
                engine.previous_drum()
            elif cmd == "h":
                engine.switch_head(engine.cursor.head.other if engine.cursor else Head.BATTER)
            elif cmd == "r":
                engine.reset_head()
            elif cmd.isdigit():
                engine.jump_to_point(int(cmd) - 1)
        except DrumTunerError as e:
            print(f"\n  {e}")


def main():
    kit = load_kit(sys.argv[1]) if len(sys.argv) > 1 else default_kit()
    data_dir = Path(sys.argv[2]) if len(sys.argv) > 2 else Path("drum_tuner_data")

    settings = load_settings(data_dir / "settings.json")
    engine = TuningEngine(
        kit,
        settings=settings,
        recorder=CsvSessionRecorder(data_dir / "sessions.csv"),
        progress_store=JsonProgressStore(data_dir / "progress.json"),
        on_error=lambda source, exc: print(f"\n  {source} write failed: {exc}"),
    )
    readout = ConsoleReadout(engine)
    session = AudioSession(engine, on_frame=readout.on_frame)

    print("Input devices:")
    for index, name in list_input_devices():
        print(f"  [{index}] {name}")

    engine.start()
    try:
        session.start()
    except NoInputDeviceError as e:
        log_event("ERROR", "Audio", str(e))
        engine.close()
        sys.exit(1)

    print(__doc__.split("Usage:")[0])
    stop_event = threading.Event()
    commands = threading.Thread(target=command_loop, args=(engine, stop_event), daemon=True)
    commands.start()
    try:
        while not stop_event.is_set():
            stop_event.wait(0.2)
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()
        engine.close()
        print("\nDone!")


if __name__ == "__main__":
    main()
