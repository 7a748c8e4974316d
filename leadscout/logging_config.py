"""
Structured logging configuration.

Called once from create_app() and from the RQ worker entry point. Supports
text (human-readable) and JSON formats via LOG_FORMAT env var. LOG_LEVEL
defaults to INFO.

Pipeline code tags its records with the run they belong to:

    logger.info("Run %s started", run_id, extra=run_context(run_id, campaign_id))

JSON output carries run_id / campaign_id as top-level fields; text output
appends them as a [run=... campaign=...] suffix.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Record attributes set through run_context()
CONTEXT_FIELDS = ('run_id', 'campaign_id')


def run_context(run_id=None, campaign_id=None) -> dict:
    """`extra=` mapping that ties a log record to a campaign run."""
    return {'run_id': run_id, 'campaign_id': campaign_id}


def _context_of(record) -> dict:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None)}


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(_context_of(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


class TextFormatter(logging.Formatter):
    """Human-readable lines; run-tagged records get a [run=... campaign=...] suffix."""

    def format(self, record):
        line = super().format(record)
        context = _context_of(record)
        if not context:
            return line
        tags = ' '.join(f"{key.split('_')[0]}={value}" for key, value in context.items())
        head, sep, tail = line.partition('\n')
        return f"{head} [{tags}]{sep}{tail}"


# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    'urllib3',
    'openai',
    'httpcore',
    'httpx',
    'rq.worker',
]


def configure_logging(app=None):
    """
    Set up root logger with format/level from env vars.

    Environment variables:
        LOG_LEVEL  — Python log level name (default: INFO)
        LOG_FORMAT — "text" (default) or "json"
    """
    level_name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)

    log_format = os.getenv('LOG_FORMAT', 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers to avoid duplicates on re-init
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if log_format == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter(
            '[%(asctime)s] %(levelname)s %(name)s — %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root.addHandler(handler)

    # Quiet noisy third-party loggers
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
