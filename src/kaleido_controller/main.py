"""Command line entry point for the Kaleido controller."""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from pathlib import Path
from typing import cast

import dotenv
import uvloop

from kaleido_controller import const
from kaleido_controller.actions import AlarmState, TallyColor
from kaleido_controller.client import KaleidoClient
from kaleido_controller.config import ConfigurationError, KaleidoSettings, load_settings
from kaleido_controller.correlation import correlation_context
from kaleido_controller.feedbacks import current_layout_matches, get_feedback_definitions
from kaleido_controller.logging_abstraction import get_logger, set_package_level
from kaleido_controller.metrics import start_metrics_server
from kaleido_controller.presets import build_presets
from kaleido_controller.session import SessionStatus
from kaleido_controller.state import DerivedState
from kaleido_controller.transport.exceptions import KaleidoConnectionError

logger = get_logger(__name__)

DEFAULT_WAIT_SECONDS = 30.0


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the controller process."""
    parser = argparse.ArgumentParser(
        prog="kaleido-controller",
        description="Drive a Kaleido multiviewer over its telnet control port",
    )
    _ = parser.add_argument("--host", help="Device address (default: $KALEIDO_HOST)")
    _ = parser.add_argument("--port", type=int, help="Device control port (default: 13000)")
    _ = parser.add_argument("--config", type=Path, help="YAML settings file")
    _ = parser.add_argument("--env", type=Path, default=None, help="Path to the environment file")
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument("--layout", help="Recall a layout (ROOM/Layout.kg2 for a room layout)")
    _ = parser.add_argument("--umd-text", help="Set the dynamic UMD text")
    _ = parser.add_argument(
        "--tally",
        choices=[color.name.lower() for color in TallyColor],
        help="Set a tally colour active",
    )
    _ = parser.add_argument("--tally-off", action="store_true", help="With --tally, set it inactive instead")
    _ = parser.add_argument(
        "--alarm",
        choices=[state.value for state in AlarmState],
        help="Set the alarm state",
    )
    _ = parser.add_argument("--watch", action="store_true", help="Stay connected and print state changes")
    _ = parser.add_argument(
        "--wait",
        type=float,
        default=DEFAULT_WAIT_SECONDS,
        help=f"Seconds to wait for the device to connect and answer (default: {DEFAULT_WAIT_SECONDS:.0f})",
    )
    _ = parser.add_argument("--metrics-port", type=int, help="Serve Prometheus metrics on this port")
    return parser.parse_args(argv)


def load_env_file(env_file: Path) -> None:
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return
    if dotenv.load_dotenv(env_path, override=True):
        logger.info("Environment variables loaded", extra={"source": str(env_path)})
        # Settings defaults read KALEIDO_* from const at import time
        _ = importlib.reload(const)
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})


def build_settings(args: argparse.Namespace) -> KaleidoSettings:
    overrides: dict[str, object] = {"host": args.host, "port": args.port}
    if args.debug:
        overrides["debug"] = True
    if args.metrics_port is not None:
        overrides["metrics_port"] = args.metrics_port
        overrides["enable_metrics"] = True
    return load_settings(cast("Path | None", args.config), **overrides)


def _log_status(status: SessionStatus, message: str | None) -> None:
    if status in (SessionStatus.UNKNOWN_ERROR, SessionStatus.CONNECTION_FAILURE):
        logger.error("Status: %s", status.value, extra={"detail": message or ""})
    elif status is SessionStatus.UNKNOWN_WARNING:
        logger.warning("Status: %s", status.value, extra={"detail": message or ""})
    else:
        logger.info("Status: %s", status.value, extra={"detail": message or ""})


def describe_state(state: DerivedState) -> dict[str, object]:
    """Snapshot plus the layout buttons and feedbacks a control surface would show."""
    described = state.snapshot().as_dict()
    described["presets"] = {
        preset_id: {
            "text": preset.text,
            "layout": preset.action_options["name"],
            "room": preset.feedback_room,
            "active": current_layout_matches(state, preset.feedback_room, preset.feedback_layout),
        }
        for preset_id, preset in build_presets(state.layouts).items()
    }
    described["feedbacks"] = {
        feedback_id: {"name": feedback.name, "rooms": [room for room, _label in feedback.room_choices]}
        for feedback_id, feedback in get_feedback_definitions(state).items()
    }
    return described


def print_state(state: DerivedState) -> None:
    print(json.dumps(describe_state(state), indent=2), flush=True)  # noqa: T201


async def main_async(args: argparse.Namespace, settings: KaleidoSettings) -> int:
    """Connect, run the startup queries and requested actions, print the state."""
    if settings.enable_metrics:
        start_metrics_server(settings.metrics_port)
        logger.info("Metrics server started on port %d", settings.metrics_port)

    client = KaleidoClient(settings, on_status=_log_status)
    await client.start()
    try:
        await client.wait_until_connected(args.wait)
        await client.wait_until_idle(args.wait)

        if args.layout:
            await client.recall_layout(args.layout)
        if args.umd_text is not None:
            await client.set_umd_text(args.umd_text)
        if args.tally:
            await client.set_tally(TallyColor[args.tally.upper()], active=not args.tally_off)
        if args.alarm:
            await client.set_alarm(AlarmState(args.alarm))
        await client.wait_until_idle(args.wait)

        print_state(client.state)

        if args.watch:
            _ = client.state.add_listener(lambda _fields: print_state(client.state))
            await client.run_forever()
    except TimeoutError:
        logger.error(
            "Device %s did not answer within %.1fs",
            settings.host,
            args.wait,
            extra={"host": settings.host, "wait": args.wait},
        )
        return 1
    except KaleidoConnectionError as e:
        logger.error("%s", e, extra={"host": settings.host})
        return 1
    finally:
        await client.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the Kaleido controller entry point."""
    with correlation_context():
        args = parse_cli(argv)
        if args.env:
            load_env_file(args.env)

        try:
            settings = build_settings(args)
        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
            return 2

        if settings.debug:
            set_package_level(logging.DEBUG)
            logger.info("Debug logging enabled")

        logger.info("Starting Kaleido controller", extra={"version": const.KALEIDO_VERSION, "host": settings.host})
        try:
            return uvloop.run(main_async(args, settings))
        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
            return 2
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
            return 130


if __name__ == "__main__":
    sys.exit(main())
