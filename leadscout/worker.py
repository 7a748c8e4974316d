"""
RQ worker entry point — `python -m leadscout.worker`.

Books the hourly scheduled-flow job, then works the default queue with the
scheduler enabled so enqueue_in / enqueue_at jobs (requeued pipeline runs,
the hourly cron) are picked up.
"""
import logging

from rq import Worker

from leadscout.extensions import redis_client
from leadscout.logging_config import configure_logging
from leadscout.pipeline.manager import _get_queue
from leadscout.pipeline.triggers import schedule_hourly_flows
from leadscout.services.circuit_breaker import init_breakers

logger = logging.getLogger('leadscout.worker')


def main():
    configure_logging()
    init_breakers(redis_client)
    schedule_hourly_flows()
    logger.info("Worker starting")
    Worker([_get_queue()], connection=redis_client).work(with_scheduler=True)


if __name__ == '__main__':
    main()
