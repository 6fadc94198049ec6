"""
Command line entry point: run the controller against a ROM, or validate profiles.
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional

from gbpilot.control import ControllerConfig, CycleController, CycleResult
from gbpilot.errors import GbPilotError, ProfileValidationError
from gbpilot.feedback import FeedbackEngine, format_validation_errors, load_profile_file
from gbpilot.knowledge import JsonlNotesStore
from gbpilot.llm import LLMConfig, create_llm_client
from gbpilot.middleware import PyBoyConfig, PyBoyDevice
from gbpilot.prompting import GoalRegistry, SystemPromptRegistry

logger = logging.getLogger("gbpilot")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Let a vision model play a Game Boy game.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the closed-loop controller on a ROM.")
    run.add_argument("rom", type=Path, help="Path to the Game Boy ROM.")
    run.add_argument(
        "--profiles",
        type=Path,
        action="append",
        default=[],
        help="Feedback profile JSON file or directory (repeatable).",
    )
    run.add_argument("--model", type=str, help="Model name; 'mock' replays canned replies.")
    run.add_argument("--title", type=str, help="Override the cartridge title used for profile matching.")
    run.add_argument("--interval-ms", type=int, help="Milliseconds between cycles.")
    run.add_argument("--game-context", type=str, help="Free-text context about the game.")
    run.add_argument("--goal", type=str, help="Active goal description.")
    run.add_argument("--goal-context", type=str, help="Extra context for the goal.")
    run.add_argument("--system-prompt", type=str, help="Id of the system prompt to activate.")
    run.add_argument("--state-dir", type=Path, help="Directory for notes, goals and prompts.")
    run.add_argument("--trace", type=Path, help="Append a JSONL record per cycle to this file.")
    run.add_argument("--cycles", type=int, default=0, help="Stop after N cycles (0 = run until interrupted).")
    run.add_argument("--speed", type=float, default=1.0, help="Emulation speed (0 = unlimited).")
    run.add_argument("--window", type=str, default="null", help="PyBoy window type (null, SDL2).")
    run.add_argument(
        "--allow-missing-profile",
        action="store_true",
        help="Arm the controller even when no feedback profile matches the title.",
    )

    check = subparsers.add_parser("check-profile", help="Validate feedback profile JSON files.")
    check.add_argument("paths", type=Path, nargs="+")
    return parser.parse_args(argv)


def _profile_files(paths: List[Path]) -> List[Path]:
    files: List[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(path.glob("*.json")))
        else:
            files.append(path)
    return files


def check_profiles(paths: List[Path]) -> int:
    failures = 0
    for path in _profile_files(paths):
        try:
            profile = load_profile_file(path)
        except ProfileValidationError as exc:
            failures += 1
            print(f"{path}: {exc}")
            if exc.errors:
                print(format_validation_errors(exc.errors))
            continue
        print(
            f"{path}: ok ({profile.title_pattern!r}, {len(profile.detectors)} detectors, "
            f"{len(profile.reward_rules)} rules)"
        )
    return 1 if failures else 0


def run_controller(args: argparse.Namespace) -> int:
    config = ControllerConfig.from_env()
    if args.interval_ms:
        config.capture_interval_ms = args.interval_ms
    if args.game_context:
        config.game_context = args.game_context
    if args.title:
        config.title = args.title
    if args.trace:
        config.trace_path = args.trace
    if args.allow_missing_profile:
        config.require_feedback_profile = False

    llm_config = LLMConfig.from_env()
    if args.model:
        llm_config.model = args.model
    client = create_llm_client(llm_config)

    engine = FeedbackEngine()
    for path in _profile_files(args.profiles):
        engine.load_profile_file(path)

    state_dir: Optional[Path] = args.state_dir
    goals = GoalRegistry(path=state_dir / "goals.json" if state_dir else None)
    prompts = SystemPromptRegistry(path=state_dir / "prompts.json" if state_dir else None)
    notes = JsonlNotesStore(state_dir) if state_dir else None

    device = PyBoyDevice(PyBoyConfig(rom_path=str(args.rom), window_type=args.window, speed=args.speed))
    device.start()

    def _on_action(result: CycleResult) -> None:
        for line in result.feedback.text_lines if result.feedback else []:
            logger.info("  feedback: %s", line)

    controller = CycleController(
        device,
        client,
        engine=engine,
        goals=goals,
        prompts=prompts,
        notes=notes,
        config=config,
        on_action=_on_action,
        on_error=lambda message: logger.error("Controller error: %s", message),
    )
    if args.goal:
        controller.set_goal(args.goal, args.goal_context)
    if args.system_prompt and not controller.set_system_prompt(args.system_prompt):
        logger.warning("Unknown system prompt id %r; keeping %r", args.system_prompt, prompts.active.id)

    try:
        if not controller.enable():
            logger.error("Controller did not arm: %s", controller.last_error or "emulator not running")
            return 1
        while controller.armed and device.is_running():
            if args.cycles and controller.cycle_count >= args.cycles:
                break
            time.sleep(0.25)
            controller.refresh()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        controller.close()
        device.close()
    logger.info("Episode reward: %.2f over %d cycles", controller.engine.episode_total, controller.cycle_count)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    if args.command == "check-profile":
        return check_profiles(args.paths)
    try:
        return run_controller(args)
    except GbPilotError as exc:
        raise SystemExit(f"gbpilot: {exc}") from exc


if __name__ == "__main__":
    raise SystemExit(main())
