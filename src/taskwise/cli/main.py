# src/taskwise/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs one maintenance command:
  taskwise <command> [args...]
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

from ..cli.bootstrap import create_initial_state
from ..cli.commands import CommandError, registry
from ..config import get_settings
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv) or ["help"]
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=getattr(settings, "data_dir", ".local/taskwise"), console_level=console_level)

    logger.debug("Starting %s...", getattr(settings, "app_name", "taskwise"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    try:
        reply = registry.handle(state, args)
    except CommandError as e:
        print(str(e), file=sys.stderr)
        return 2
    except Exception:
        logger.exception("Command %s failed", args[0])
        return 1
    finally:
        state.store.close()

    print(reply)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
