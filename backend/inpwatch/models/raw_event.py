"""Raw interaction sample model."""
from sqlalchemy import Column, BigInteger, Integer, SmallInteger, String, Text, DateTime, Enum, Index
from inpwatch.database import Base
from inpwatch.constants import DeviceClass


class RawEvent(Base):
    """One INP sample as accepted by intake. Immutable once stored."""
    __tablename__ = "inp_events"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True)  # naive UTC, second precision
    page_url = Column(Text, nullable=False)
    interaction_type = Column(String(32), nullable=False, default="click")
    target_selector = Column(String(255), nullable=False, default="")
    interaction_latency_ms = Column(Integer, nullable=False)
    long_task_ms = Column(Integer, nullable=True)
    script_url = Column(String(255), nullable=True)
    device_class = Column(
        Enum(*DeviceClass.ALL, name="inp_device_class", native_enum=False),
        nullable=False,
        default=DeviceClass.OTHER,
    )
    sample_rate = Column(SmallInteger, nullable=False, default=100)

    __table_args__ = (
        Index("idx_inp_events_selector_ts", "target_selector", "timestamp"),
    )
