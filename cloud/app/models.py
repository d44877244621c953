from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from datetime import datetime

class Base(DeclarativeBase):
    pass

class Run(Base):
    __tablename__ = "runs"
    id: Mapped[str] = mapped_column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    event_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    agent_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    workflow: Mapped[str] = mapped_column(sa.Text, nullable=False)
    event_kind: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    branch: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    target_branch: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)  # success|failed|aborted
    failed_step: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    duration: Mapped[float] = mapped_column(sa.Float, nullable=False, server_default=sa.text("0"))
    created_at: Mapped[datetime] = mapped_column(sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False)

    steps: Mapped[list["StepOutcome"]] = relationship(
        back_populates="run", order_by="StepOutcome.position", cascade="all, delete-orphan", lazy="selectin"
    )

class StepOutcome(Base):
    __tablename__ = "step_outcomes"
    run_id: Mapped[str] = mapped_column(UUID(as_uuid=True), sa.ForeignKey("runs.id", ondelete="CASCADE"), primary_key=True)
    position: Mapped[int] = mapped_column(sa.Integer, primary_key=True)  # 1-based
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    command: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)
    exit_status: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    output: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default=sa.text("''"))
    duration: Mapped[float] = mapped_column(sa.Float, nullable=False, server_default=sa.text("0"))

    run: Mapped[Run] = relationship(back_populates="steps")
