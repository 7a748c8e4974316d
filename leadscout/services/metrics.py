"""
Campaign metrics — per-campaign, per-day accumulated counters.

One row per (campaign_id, date). Every call adds its increments to that
row, creating it on first use. A second writer racing the insert trips the
unique constraint; the retry finds the row and takes the update path.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError

from leadscout.database import get_session
from leadscout.models.campaign_metric import CampaignMetric

logger = logging.getLogger('services.metrics')

METRIC_FIELDS = (
    'leads_discovered',
    'leads_enriched',
    'leads_qualified',
    'leads_approved',
    'leads_rejected',
    'api_calls',
    'llm_tokens',
    'runs_count',
)


def apply_campaign_metrics(session, campaign_id, day: Optional[date] = None, **increments) -> CampaignMetric:
    """Add increments to the day's row inside the caller's session (no commit)."""
    unknown = set(increments) - set(METRIC_FIELDS)
    if unknown:
        raise ValueError(f"Unknown metric fields: {sorted(unknown)}")
    day = day or date.today()

    row = session.query(CampaignMetric).filter(
        CampaignMetric.campaign_id == campaign_id,
        CampaignMetric.date == day,
    ).first()
    if row is None:
        row = CampaignMetric(campaign_id=campaign_id, date=day, **{f: 0 for f in METRIC_FIELDS})
        session.add(row)
    for name, amount in increments.items():
        setattr(row, name, (getattr(row, name) or 0) + (amount or 0))
    session.flush()
    return row


def record_campaign_metrics(campaign_id, day: Optional[date] = None, **increments) -> Optional[CampaignMetric]:
    """
    Standalone upsert (own session). Storage failures are logged and return
    None so callers can treat metrics as best-effort.
    """
    for attempt in range(2):
        session = get_session()
        try:
            row = apply_campaign_metrics(session, campaign_id, day, **increments)
            session.commit()
            logger.info("Metrics for campaign %s: %s", campaign_id, increments)
            return row
        except IntegrityError:
            session.rollback()
            if attempt:
                logger.error("Metrics upsert for campaign %s kept colliding", campaign_id, exc_info=True)
                return None
            logger.info("Metrics row for campaign %s created concurrently, retrying as update", campaign_id)
        except ValueError:
            session.rollback()
            raise
        except Exception:
            session.rollback()
            logger.error("Failed to record metrics for campaign %s", campaign_id, exc_info=True)
            return None
        finally:
            session.close()


def get_campaign_metrics(campaign_id, day: Optional[date] = None) -> Optional[CampaignMetric]:
    session = get_session()
    try:
        return session.query(CampaignMetric).filter(
            CampaignMetric.campaign_id == campaign_id,
            CampaignMetric.date == (day or date.today()),
        ).first()
    finally:
        session.close()
