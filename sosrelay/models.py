"""
SQLAlchemy ORM models for the command service database.

For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import BigInteger, Column, Float, Integer, String, Text

from sosrelay.storage import Base


class SafeBase(Base):
    """
    A capacity-bounded shelter that alerts are routed toward.

    capacity and filled are maintained by an external occupancy process;
    the resolver only reads them. filled may exceed capacity.
    """
    __tablename__ = "safe_bases"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    filled = Column(Integer, nullable=False, default=0)


class SosEvent(Base):
    """A parsed SOS alert. status is always "received" when created."""
    __tablename__ = "sos_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String, nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    type = Column(String, nullable=False)
    time = Column(String, nullable=False)  # ISO-8601 string as sent by the device
    status = Column(String, nullable=False, default="received")


class AlertLog(Base):
    """Append-only audit trail of every raw payload received on /sos."""
    __tablename__ = "alert_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raw_message = Column(Text, nullable=False)
    received_at = Column(BigInteger, nullable=False)  # epoch milliseconds
