import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from mitmrouter import preflight
from mitmrouter.config import build_router_config, load_config
from mitmrouter.errors import RouterError, UsageError
from mitmrouter.lifecycle import LifecycleResult, down, up
from mitmrouter.logging import setup_logging

log = logging.getLogger("mitmrouter.main")

USAGE = "Usage: mitmrouter <up/down>"

_RESULT_EXIT_CODES = {
    "stopped": 0,
    "already_stopped": 0,
    "hostapd_exited": 8,
}


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def parse_args(argv: List[str]) -> argparse.Namespace:
    ap = _ArgumentParser(prog="mitmrouter", usage=USAGE, add_help=False)
    ap.add_argument("verb", choices=("up", "down"))
    return ap.parse_args(argv)


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum, _frame):
        if stop_event.is_set():
            return
        try:
            sig_name = signal.Signals(signum).name
        except ValueError:
            sig_name = str(signum)
        log.info("shutdown_signal:%s", sig_name)
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP):
        signal.signal(sig, _handler)


def exit_code_for(res: LifecycleResult) -> int:
    if res.error is not None:
        return getattr(res.error, "exit_code", 1)
    return _RESULT_EXIT_CODES.get(res.code, 1)


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()

    # Privilege comes before everything else, argument parsing included.
    try:
        preflight.require_root()
    except RouterError as exc:
        log.error(str(exc), extra={"op": "main"})
        return exc.exit_code

    try:
        args = parse_args(sys.argv[1:] if argv is None else list(argv))
    except UsageError:
        print(USAGE, file=sys.stderr)
        return UsageError.exit_code

    try:
        preflight.require()
        cfg = build_router_config(load_config())
    except RouterError as exc:
        log.error(str(exc), extra={"op": args.verb})
        return exc.exit_code

    if cfg.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.verb == "down":
        res = down(cfg)
    else:
        stop_event = threading.Event()
        _install_signal_handlers(stop_event)
        log.info("access_point_up_requested", extra={"op": "up", "method": cfg.method})
        res = up(cfg, stop_event)

    rc = exit_code_for(res)
    log.info(res.code, extra={"op": args.verb, "rc": rc})
    return rc


if __name__ == "__main__":
    sys.exit(main())
