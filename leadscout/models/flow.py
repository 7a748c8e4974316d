"""
Flow + FlowNode models — automation flows fired by record-created events,
webhooks, the hourly scheduler, or a manual trigger.
"""
import uuid

from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from leadscout.database import Base


class Flow(Base):
    __tablename__ = 'flows'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default='draft')   # draft / active / paused
    trigger_type = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class FlowNode(Base):
    __tablename__ = 'flow_nodes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    flow_id = Column(Text, ForeignKey('flows.id'), nullable=False, index=True)
    node_type = Column(Text, nullable=False)
    label = Column(Text, default='')
    config = Column(JSON, default=dict)
    position_x = Column(Integer, default=0)
    position_y = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
