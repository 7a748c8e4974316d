"""
CampaignMetric model — per-campaign, per-day accumulated counters.
"""
from sqlalchemy import Column, Integer, Text, Date, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from leadscout.database import Base


class CampaignMetric(Base):
    __tablename__ = 'campaign_metrics'
    __table_args__ = (
        UniqueConstraint('campaign_id', 'date', name='uq_campaign_metric_campaign_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    leads_discovered = Column(Integer, default=0)
    leads_enriched = Column(Integer, default=0)
    leads_qualified = Column(Integer, default=0)
    leads_approved = Column(Integer, default=0)
    leads_rejected = Column(Integer, default=0)
    api_calls = Column(Integer, default=0)
    llm_tokens = Column(Integer, default=0)
    runs_count = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
