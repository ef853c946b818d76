from sqlalchemy import JSON, Column, DateTime, Integer, text

from greenhouse.database import Base


class FarmbotLogSumup(Base):
    """One day of FarmBot activity: completed/uncompleted sequences and errors."""
    __tablename__ = "farmbotlogs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_sequences = Column(JSON, nullable=False, default=list)
    uncompleted_sequences = Column(JSON, nullable=False, default=list)
    error_logs = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
