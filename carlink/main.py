import argparse
import dataclasses
import logging
import sys
import time

from carlink.common.logging_config import configure_logging, level_from_name
from carlink.config import config
from carlink.constants import LOG_LEVEL
from carlink.services.codec import Movement
from carlink.services.link import create_controller
from carlink.state import StatusSnapshot, link_state

ACTIONS = {
    "forward": Movement.FORWARD,
    "backward": Movement.BACKWARD,
    "left": Movement.LEFT,
    "right": Movement.RIGHT,
    "stop": Movement.STOP,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drive a vehicle over a serial link")
    parser.add_argument(
        "actions",
        nargs="*",
        metavar="ACTION",
        help=(
            "Drive actions to send in order (" + ", ".join(ACTIONS) + "); "
            "each is held for --hold seconds, then stopped"
        ),
    )
    parser.add_argument("--list", action="store_true", help="List known devices and exit")
    parser.add_argument(
        "--port", default=config.PORT, help="Device path or pyserial URL (env CARLINK_PORT)"
    )
    parser.add_argument("--baudrate", type=int, default=config.BAUDRATE, help="Baud rate")
    parser.add_argument("--speed", type=float, help="Speed, 0.0 to 1.0")
    parser.add_argument("--angle", type=float, help="Servo angle, 0 to 180 degrees")
    parser.add_argument(
        "--hold", type=float, default=0.5, help="Seconds to hold each action before stopping"
    )
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set log level",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Only log warnings and errors"
    )
    return parser


def resolve_log_level(args: argparse.Namespace) -> int:
    # Priority: explicit --log-level > -v/-q > env default from constants
    if args.log_level:
        return level_from_name(args.log_level)
    if args.verbose >= 3:
        return level_from_name("TRACE")
    if args.verbose == 2:
        return logging.DEBUG
    if args.verbose == 1:
        return logging.INFO
    if args.quiet:
        return logging.WARNING
    return LOG_LEVEL


def _print_status(snapshot: StatusSnapshot) -> None:
    print(f"[{snapshot.state.value}] {snapshot.message}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    unknown = [a for a in args.actions if a not in ACTIONS]
    if unknown:
        parser.error(f"unknown action(s): {', '.join(unknown)}")
    configure_logging(resolve_log_level(args))

    cfg = dataclasses.replace(config, PORT=args.port, BAUDRATE=args.baudrate)
    controller = create_controller(cfg, mirror=link_state)
    try:
        if args.list:
            for ep in controller.refresh_endpoints():
                label = f"  ({ep.name})" if ep.name else ""
                print(f"{ep.address}{label}")
            return 0

        controller.publisher.subscribe(_print_status)

        pending = controller.connect()
        if pending is None or not pending.result():
            return 1

        if args.speed is not None:
            controller.set_speed(args.speed)
        if args.angle is not None:
            controller.set_angle(args.angle)
        for name in args.actions:
            controller.on_action_start(ACTIONS[name])
            time.sleep(max(0.0, args.hold))
            done = controller.on_action_end()
            if done is not None and not done.result():
                return 1
        return 0
    except KeyboardInterrupt:
        controller.on_action_end()
        return 130
    finally:
        controller.shutdown()


if __name__ == "__main__":
    sys.exit(main())
