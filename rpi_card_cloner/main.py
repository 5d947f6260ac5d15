import argparse
import signal
import sys
from pathlib import Path

from rpi_card_cloner.config import settings
from rpi_card_cloner.logging import LoggerFactory, setup_logging
from rpi_card_cloner.storage.clone import (
    CancellationToken,
    CloneSession,
    ProgressBar,
    clone_card,
)
from rpi_card_cloner.storage.exceptions import StorageError
from rpi_card_cloner.storage.system_backend import SystemDiskBackend


class ClonerArgumentParser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    default_source = settings.get_setting(
        "default_source_device", settings.DEFAULT_SOURCE_DEVICE
    )
    parser = ClonerArgumentParser(
        prog="rpi-card-cloner",
        description="Copy a Raspberry Pi SD card onto another card or USB drive",
    )
    parser.add_argument(
        "-u",
        "--reuse-uuid",
        dest="reuse_identifiers",
        action="store_true",
        help="Keep the source partition table identifier on the copy",
    )
    parser.add_argument(
        "-i",
        "--source",
        default=default_source,
        help=f"Source device (default: {default_source})",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log every progress poll")
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory for log files")
    parser.add_argument("destination", help="Destination device, e.g. /dev/sda")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = LoggerFactory.for_system()

    token = CancellationToken()
    previous_handler = token.install_signal_handler()
    progress = ProgressBar()
    try:
        with CloneSession(
            source_device=args.source,
            destination_device=args.destination,
            reuse_identifiers=args.reuse_identifiers,
        ) as session:
            clone_card(session, SystemDiskBackend(), token, progress)
    except StorageError as error:
        progress.finish()
        log.debug(f"Clone stopped: {error}")
        print(error.user_message, file=sys.stderr)
        return 1
    except Exception as error:
        progress.finish()
        log.exception(f"Unexpected error during clone: {error}")
        print(StorageError.user_message, file=sys.stderr)
        return 1
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)
    return 0


if __name__ == "__main__":
    sys.exit(main())
