"""
DiscoveredLead model — a candidate person produced by the discovery stage.

Contact fields, score, summary and signals are refined by the enrichment and
qualification stages; status only changes through human review.
"""
import uuid

from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from leadscout.database import Base


class DiscoveredLead(Base):
    __tablename__ = 'discovered_leads'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(Text, ForeignKey('discovery_campaigns.id'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    company = Column(Text, nullable=True)
    position = Column(Text, nullable=True)
    linkedin_url = Column(Text, nullable=True)
    confidence_score = Column(Integer, default=0)      # 0-100
    discovery_source = Column(Text, default='')
    status = Column(Text, nullable=False, default='pending_review')
    ai_summary = Column(Text, default='')
    signals = Column(JSON, default=list)
    discovered_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'campaign_id': self.campaign_id,
            'name': self.name,
            'email': self.email,
            'company': self.company,
            'position': self.position,
            'linkedin_url': self.linkedin_url,
            'confidence_score': self.confidence_score or 0,
            'discovery_source': self.discovery_source or '',
            'status': self.status,
            'ai_summary': self.ai_summary or '',
            'signals': list(self.signals or []),
            'discovered_at': self.discovered_at.isoformat() if self.discovered_at else None,
        }
