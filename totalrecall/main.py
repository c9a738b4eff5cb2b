import sys
import logging
from typing import Callable, Dict, List, Optional

import setproctitle

from totalrecall.config import effective_settings as config
from totalrecall.database import MetricRecord, MetricsDBManager
from totalrecall.errors import FatalWorkerError
from totalrecall.log import setup_logging
from totalrecall.worker import BackupWorker
from totalrecall.worker.ingest import MetricsIngestor
from totalrecall.worker.parsing import append_metric

log = logging.getLogger("totalrecall")

USAGE = """Usage: totalrecall-worker <command> [args] [--verbose]

Commands:
  run                                              Run the scheduled backup worker until stopped.
  ingest                                           Ingest the metrics file once.
  init-schema                                      Create the metrics schema if it is missing.
  record <op> <subject> <start> <finish> <size>    Append one metric to the metrics file.
  help                                             Show this message.
"""


def _make_db_manager() -> MetricsDBManager:
    return MetricsDBManager(
        config.DATABASE_NAME,
        config.METRICS_SCHEMA_NAME,
        config.METRICS_TABLE_NAME,
        connect_timeout=config.DATABASE_CONNECT_TIMEOUT,
    )


def _run(args: List[str]) -> int:
    setproctitle.setproctitle(config.WORKER_PROCESS_TITLE)
    worker = BackupWorker(config)
    worker.install_signal_handlers()
    return worker.run()


def _ingest(args: List[str]) -> int:
    ingestor = MetricsIngestor(_make_db_manager(), config.METRICS_FILE_PATH, config.LOCK_FILE_PATH)
    outcome = ingestor.ingest()
    print(f"Ingested {outcome.rows_ingested} metric record(s).")
    return 0


def _init_schema(args: List[str]) -> int:
    _make_db_manager().ensure_schema()
    print(f"Schema '{config.METRICS_SCHEMA_NAME}' is ready.")
    return 0


def _record(args: List[str]) -> int:
    if len(args) != 5:
        print("Usage: totalrecall-worker record <op> <subject> <start> <finish> <size>")
        return 2
    op, subject, start_time, finish_time, raw_size = args
    try:
        record = MetricRecord(op, subject, start_time, finish_time, int(raw_size))
        append_metric(record, config.METRICS_FILE_PATH, config.LOCK_FILE_PATH)
    except ValueError as e:
        log.error(f"Invalid metric: {e}")
        return 2
    except OSError as e:
        log.error(f"Failed to record metric: {e}")
        return 1
    return 0


def _help(args: List[str]) -> int:
    print(USAGE)
    return 0


COMMANDS: Dict[str, Callable[[List[str]], int]] = {
    "run": _run,
    "ingest": _ingest,
    "init-schema": _init_schema,
    "record": _record,
    "help": _help,
}


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the worker command line."""
    args = list(sys.argv[1:] if argv is None else argv)

    verbose = "--verbose" in args
    if verbose:
        args.remove("--verbose")
    setup_logging(logging.DEBUG if verbose else logging.INFO)

    if not args:
        print(USAGE)
        return 2

    command, command_args = args[0].lower(), args[1:]
    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command '{command}'.\n")
        print(USAGE)
        return 2

    try:
        return handler(command_args)
    except FatalWorkerError as e:
        log.critical(f"TotalRecall worker terminating: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
