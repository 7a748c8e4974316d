"""
Notifications — Slack webhook integration for pipeline and flow events.

Notification failure never blocks the pipeline.
"""
import logging
import requests

from leadscout.config import SLACK_WEBHOOK_URL

logger = logging.getLogger('services.notifications')


def _post(blocks):
    requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)


def notify_run_complete(campaign, run_id, summary):
    """Post a run completion summary to Slack. summary: discovered/enriched/qualified/tokens."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"Campaign Run Completed — {campaign.get('name', 'Campaign')}",
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Discovered:* {summary.get('discovered', 0)}"},
                    {"type": "mrkdwn", "text": f"*Enriched:* {summary.get('enriched', 0)}"},
                    {"type": "mrkdwn", "text": f"*Qualified:* {summary.get('qualified', 0)}"},
                    {"type": "mrkdwn", "text": f"*Tokens:* {summary.get('tokens', 0)}"},
                ]
            },
        ]

        warnings = summary.get('warnings') or []
        if warnings:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": ' '.join(warnings)}]
            })

        _post(blocks)
        logger.info("Run %s completion notification sent", run_id[:8])

    except Exception:
        logger.error("Failed to send notification for run %s", run_id[:8], exc_info=True)


def notify_run_failed(campaign, run_id, stage, error):
    """Post a run failure alert to Slack."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"Campaign Run FAILED — {campaign.get('name', 'Campaign')}",
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Stage:* {stage or 'unknown'}"},
                    {"type": "mrkdwn", "text": f"*Run:* {run_id[:8]}"},
                ]
            },
        ]

        if error:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:* ```{str(error)[:500]}```"}
            })

        _post(blocks)
        logger.info("Run %s failure notification sent", run_id[:8])

    except Exception:
        logger.error("Failed to send failure notification for run %s", run_id[:8], exc_info=True)


def notify_flow_triggered(flow, trigger, detail=''):
    """Post a flow-fired notice to Slack. flow is a dict with id/name/node_count."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        text = f"*Flow triggered:* {flow.get('name', flow.get('id'))} ({trigger})"
        if flow.get('node_count') is not None:
            text += f" — {flow['node_count']} nodes"
        blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]
        if detail:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": detail[:500]}]
            })
        _post(blocks)
        logger.info("Flow %s notification sent", flow.get('id'))

    except Exception:
        logger.error("Failed to send flow notification for %s", flow.get('id'), exc_info=True)
