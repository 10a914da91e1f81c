#!/usr/bin/env python3
"""
IPO Allotment Checker - Main Entry Point

Usage:
    # Check every BOID in a file against one IPO
    python main.py check --boids boids.yaml --company "Sarbottam Cement Limited"

    # Read every captcha yourself
    python main.py check --boids boids.txt --no-solver --headful

    # Validate a BOID file without opening a browser
    python main.py validate --boids boids.yaml

    # Show configuration problems
    python main.py check-env

BOID files are either YAML (a list of BOIDs or of {boid, label} mappings) or
plain text with one "boid[,label]" per line.
"""

import sys
import asyncio
import argparse
import logging
import tempfile
import threading
from pathlib import Path
from typing import Any, List

import yaml

from ipo_checker.api.config import get_config
from ipo_checker.api.logging_config import setup_logging

logger = logging.getLogger("ipo_checker.main")


def load_targets(path: str) -> List[Any]:
    """Read raw target entries from a YAML or text file."""
    file_path = Path(path)
    content = file_path.read_text(encoding="utf-8")

    if file_path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(content) or []
        if isinstance(data, dict):
            data = data.get("boids") or data.get("targets") or []
        return list(data)

    entries = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        boid, _, label = line.partition(",")
        entries.append((boid.strip(), label.strip() or None))
    return entries


def check_environment() -> bool:
    """Print configuration problems."""
    problems = get_config().validate()
    if problems:
        print("❌ Configuration problems:")
        for problem in problems:
            print(f"  - {problem}")
        print("\nPlease fix these in your .env file or environment.")
        return False

    print("✅ Configuration looks good")
    return True


def validate_targets(path: str) -> bool:
    from ipo_checker.api.service import parse_targets
    from ipo_checker.core.errors import CheckerError

    try:
        targets = parse_targets(load_targets(path))
    except (OSError, yaml.YAMLError, CheckerError) as e:
        print(f"❌ {e}")
        return False

    print(f"✅ {len(targets)} valid BOIDs")
    for target in targets:
        print(f"  - {target.display_name}")
    return True


def read_line(prompt: str) -> "asyncio.Future":
    """
    Read one line from stdin on a daemon thread.

    The returned future resolves with the stripped line ("" on EOF). A prompt
    nobody answers never keeps the process alive at exit.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def deliver(line: str) -> None:
        if not future.done():
            future.set_result(line)

    def reader() -> None:
        try:
            line = input(prompt)
        except EOFError:
            line = ""
        try:
            loop.call_soon_threadsafe(deliver, line.strip())
        except RuntimeError:
            pass  # loop already closed

    threading.Thread(target=reader, name="captcha-prompt", daemon=True).start()
    return future


class ConsoleCaptchaPrompt:
    """Asks for manual captcha entry on the terminal."""

    def __init__(self, image_dir: str, reader=read_line):
        self.image_dir = Path(image_dir)
        self.reader = reader
        self._tasks = set()

    def __call__(self, request) -> None:
        task = asyncio.create_task(self._prompt(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _prompt(self, request) -> None:
        extension = request.image.mime_type.split("/")[-1] or "png"
        image_path = self.image_dir / f"captcha_{request.identifier}_{request.attempt}.{extension}"
        image_path.write_bytes(request.image.data)

        print(f"\n🔐 Manual captcha for {request.label or request.identifier}")
        print(f"   Image: {image_path}")
        print("   Type the digits and press Enter (Enter alone skips this BOID)")
        while not request.done:
            answer = await self.reader("   Captcha: ")
            if request.done:
                break
            if not answer:
                request.skip()
                break
            try:
                request.submit(answer)
            except ValueError as e:
                print(f"   {e}")


async def run_check(args) -> int:
    """Run a bulk check from the command line."""
    from ipo_checker.api.captcha_solver import CaptchaSolver
    from ipo_checker.api.service import CheckerService
    from ipo_checker.browser.bridge import BrowserBridge
    from ipo_checker.browser.surface import PlaywrightSurface
    from ipo_checker.core.errors import CheckerError
    from ipo_checker.core.report import ConsoleReportSink

    config = get_config()
    raw_targets = load_targets(args.boids)
    solver_enabled = config.CAPTCHA_SOLVER_ENABLED and not args.no_solver

    bridge = BrowserBridge()
    surface = PlaywrightSurface(
        bridge,
        url=args.url or config.IPO_RESULT_URL,
        headless=config.HEADLESS and not args.headful,
        user_agent=config.USER_AGENT,
        navigation_timeout_ms=config.BROWSER_TIMEOUT_MS,
        user_agents=config.USER_AGENTS,
        max_load_attempts=config.PAGE_LOAD_ATTEMPTS,
    )

    with tempfile.TemporaryDirectory(prefix="ipo_captcha_") as image_dir:
        try:
            async with CaptchaSolver(
                config.CAPTCHA_API_URL,
                enabled=solver_enabled,
                timeout_seconds=config.CAPTCHA_SOLVER_TIMEOUT_SECONDS,
            ) as solver, surface:
                bridge.attach(surface)
                service = CheckerService(bridge, solver, config=config, report_sink=ConsoleReportSink())
                service.manual_captcha_requests.subscribe(ConsoleCaptchaPrompt(image_dir))

                async for result in service.start_run(raw_targets, args.company, solver_enabled=solver_enabled):
                    logger.debug(f"Received {result.identifier}: {result.status.value}")
        except CheckerError as e:
            logger.error(f"❌ {e}")
            return 1

    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="IPO Allotment Checker - bulk IPO result checks for saved BOIDs"
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Check command
    check_parser = subparsers.add_parser('check', help='Check allotment for every BOID in a file')
    check_parser.add_argument('--boids', required=True, help='Path to BOID list (YAML or text)')
    check_parser.add_argument('--company', help='IPO company name as shown in the result form')
    check_parser.add_argument('--no-solver', action='store_true', help='Enter every captcha manually')
    check_parser.add_argument('--headful', action='store_true', help='Show the browser window')
    check_parser.add_argument('--url', help='Override the result form URL')

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a BOID list')
    validate_parser.add_argument('--boids', required=True, help='Path to BOID list (YAML or text)')

    # Environment command
    subparsers.add_parser('check-env', help='Check configuration')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    if args.command == 'check-env':
        sys.exit(0 if check_environment() else 1)

    if args.command == 'validate':
        sys.exit(0 if validate_targets(args.boids) else 1)

    setup_logging()
    if not check_environment():
        sys.exit(1)

    if args.command == 'check':
        try:
            sys.exit(asyncio.run(run_check(args)))
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(130)


if __name__ == "__main__":
    main()
