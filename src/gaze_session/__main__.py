import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from gaze_session import __version__
from gaze_session.acquisition import DummyFrameSource, StaticHeadTracker, WallRayCaster
from gaze_session.configs.app import AppSettings
from gaze_session.core import SessionManager
from gaze_session.errors import SchemaMismatchError
from gaze_session.replay import SessionReplay
from gaze_session.utils.logging import setup_logging

logger = logging.getLogger("main")


class PrintingCuePlayer:
    def play(self, index: int) -> None:
        print(f"cue {index}")


async def record(settings: AppSettings, seconds: float) -> Optional[Path]:
    if settings.use_dummy_mode:
        logger.warning("Initializing DUMMY source (Simulation Mode)")
        source = DummyFrameSource()
    else:
        logger.info("Initializing TOBII source")
        from gaze_session.acquisition.tobii import TobiiFrameSource
        source = TobiiFrameSource(max_openness_mm=settings.tracker.tobii_max_openness_mm)

    manager = SessionManager(settings, source, StaticHeadTracker(), WallRayCaster())
    if await manager.start_recording() is None:
        return None
    manager.update_status(clip=0, attempt=1)
    try:
        await asyncio.sleep(seconds)
        await manager.stop_recording()
    finally:
        # Marks the log as incomplete if recording was interrupted.
        await manager.shutdown()
    return manager.session_log.file_path


async def replay(settings: AppSettings) -> int:
    player = SessionReplay.from_settings(settings, cue_player=PrintingCuePlayer())
    try:
        state = await player.run()
    except SchemaMismatchError as e:
        logger.error(f"Cannot replay log: {e}")
        return 1
    logger.info(f"Replayed {state.rows_applied} rows, skipped {state.rows_skipped}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gaze-session", description="Record and replay gaze sessions.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    record_parser = commands.add_parser("record", help="Record a session log.")
    record_parser.add_argument("--dummy", action="store_true", help="Use the simulated tracker.")
    record_parser.add_argument("--seconds", type=float, default=10.0, help="Recording duration.")

    replay_parser = commands.add_parser("replay", help="Replay a session log in real time.")
    replay_parser.add_argument("path", nargs="?", type=Path, help="Log file; defaults to the newest log.")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # 1. Load Configuration
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"Configuration Error: {e}")
        return 1

    # 2. Setup Logging
    setup_logging(settings.logging.level, settings.logging.format)
    logger.info(f"Starting Gaze Session v{__version__}")

    # 3. Run
    try:
        if args.command == "record":
            if args.dummy:
                settings.use_dummy_mode = True
            path = asyncio.run(record(settings, args.seconds))
            return 0 if path else 1

        if args.path:
            settings.replay.log_path = args.path
        return asyncio.run(replay(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
