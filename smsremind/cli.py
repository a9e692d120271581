"""
Command line interface.  Meant to be started periodically, i.e. from
cron or a systemd timer.
"""
import argparse
import logging
import sys
from typing import List
from typing import Optional

from smsremind import __version__
from smsremind.config import get_config
from smsremind.reminder import run

log = logging.getLogger("smsremind")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smsremind",
        description="Send SMS reminders for the calendar events of an upcoming day.",
    )
    ## defaults are None, so that unset options don't override config
    ## file and environment
    parser.add_argument("--state-dir", help="Directory used to store internal states.")
    parser.add_argument(
        "--offset",
        type=int,
        help="Number of days in the future from now for which a reminder should be sent.",
    )
    parser.add_argument("--calendars", help="Comma separated list of calendar names.")
    parser.add_argument(
        "--caldav",
        help="The caldav URL including the principal and the (app-specific) password.",
    )
    parser.add_argument(
        "--dry-run",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Do not send SMS, only print (default: on).",
    )
    parser.add_argument("--sms-template", help="The SMS template.")
    parser.add_argument("--sender", help="The SMS originator name.")
    parser.add_argument("--aspsms-userkey", help="The ASPSMS userkey.")
    parser.add_argument("--aspsms-password", help="The ASPSMS API password.")
    parser.add_argument("--timezone", help="Timezone location, i.e. Europe/Vienna.")
    parser.add_argument(
        "--region", help="Region for phone numbers without country code."
    )
    parser.add_argument("--config", dest="config_file", help="Config file.")
    parser.add_argument(
        "--config-section", help="Section of the config file to use."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    options = vars(args).copy()
    config_file = options.pop("config_file")
    config_section = options.pop("config_section")
    verbose = options.pop("verbose")

    try:
        config = get_config(options, config_file, config_section)
        return run(config)
    except Exception as e:
        log.critical("%s", e, exc_info=verbose)
        return 1


if __name__ == "__main__":
    sys.exit(main())
