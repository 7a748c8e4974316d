"""
Durable steps — memoise each named orchestrator step in the run record.

A retried pipeline job replays completed steps from their checkpoint
instead of executing them again:

    steps = DurableSteps(run_id, ledger)
    campaign = steps.run('load-campaign', lambda: load(campaign_id))

Outputs must be JSON-serialisable; they are stored under
agent_runs.metadata['checkpoints'][<step name>].
"""
import logging

from leadscout.logging_config import run_context

logger = logging.getLogger('pipeline.durable')


class DurableSteps:

    def __init__(self, run_id, ledger):
        self.run_id = run_id
        self.ledger = ledger
        self._checkpoints = None

    @property
    def checkpoints(self):
        if self._checkpoints is None:
            self._checkpoints = self.ledger.get_checkpoints(self.run_id)
        return self._checkpoints

    def run(self, name, fn):
        """Return the checkpointed output of `name`, or execute fn and checkpoint it."""
        if name in self.checkpoints:
            logger.info("Run %s: step '%s' replayed from checkpoint", self.run_id, name, extra=run_context(self.run_id))
            return self.checkpoints[name]

        output = fn()
        self.ledger.save_checkpoint(self.run_id, name, output)
        self.checkpoints[name] = output
        logger.info("Run %s: step '%s' checkpointed", self.run_id, name, extra=run_context(self.run_id))
        return output
