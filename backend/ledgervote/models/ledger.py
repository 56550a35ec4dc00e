"""
Ledger state, candidate, vote record and fact tables.
"""
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, JSON, UniqueConstraint, Index
import enum

from ledgervote.core.database import Base


class FactType(str, enum.Enum):
    """Facts emitted by accepted ledger writes."""
    CANDIDATE_ADDED = "candidate_added"
    CANDIDATE_REMOVED = "candidate_removed"
    VOTING_PERIOD_SET = "voting_period_set"
    VOTING_PERIOD_CLEARED = "voting_period_cleared"
    VOTE_CAST = "vote_cast"
    ADMIN_SET = "admin_set"


class LedgerState(Base):
    """Single-row ledger header: roles, round counter and voting period."""

    __tablename__ = "ledger_state"

    id = Column(Integer, primary_key=True, default=1)

    # Roles
    owner = Column(String(128), nullable=False)
    admin = Column(String(128), nullable=True)

    # Append-only round counter, bumped once per setVotingPeriod
    current_round = Column(Integer, default=0, nullable=False)

    # Voting period in unix seconds; {0, 0} means cleared
    start_time = Column(Integer, default=0, nullable=False)
    end_time = Column(Integer, default=0, nullable=False)

    # Candidate ids are issued from here and never reused
    next_candidate_id = Column(Integer, default=0, nullable=False)

    # Incremented by every accepted write
    block_number = Column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LedgerState(round={self.current_round}, "
            f"period=[{self.start_time}, {self.end_time}), block={self.block_number})>"
        )

    def is_active_at(self, now: int) -> bool:
        """Whether ``now`` falls inside ``[start_time, end_time)``."""
        if self.end_time <= 0:
            return False
        return self.start_time <= now < self.end_time


class Candidate(Base):
    """Registered candidate."""

    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(200), nullable=False)
    created_round = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Candidate(id={self.id}, name='{self.name}')>"


class VoteRecord(Base):
    """
    One accepted vote.
    The (voter, round) unique constraint is what makes a second vote in the
    same round impossible, whatever the race between submissions.
    """

    __tablename__ = "vote_records"
    __table_args__ = (
        UniqueConstraint("voter", "round", name="uq_vote_records_voter_round"),
        Index("ix_vote_records_round_candidate", "round", "candidate_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    voter = Column(String(128), nullable=False)
    round = Column(Integer, nullable=False)
    candidate_id = Column(Integer, nullable=False)
    confirmation_id = Column(String(66), nullable=False)
    cast_at = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<VoteRecord(voter='{self.voter}', round={self.round}, candidate={self.candidate_id})>"


class LedgerFact(Base):
    """Append-only log of facts emitted by accepted writes."""

    __tablename__ = "ledger_facts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fact_type = Column(String(32), nullable=False, index=True)
    confirmation_id = Column(String(66), nullable=False, unique=True)
    block_number = Column(Integer, nullable=False)
    caller = Column(String(128), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    timestamp = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<LedgerFact(type={self.fact_type}, block={self.block_number})>"
