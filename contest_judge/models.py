from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from datetime import datetime
import enum

from .config import DATABASE_URL, DEFAULT_TIME_LIMIT, DEFAULT_MEMORY_LIMIT

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()

class JudgeStatus(str, enum.Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    ACCEPTED = "ACCEPTED"
    WRONG_ANSWER = "WRONG_ANSWER"
    TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"
    MEMORY_LIMIT_EXCEEDED = "MEMORY_LIMIT_EXCEEDED"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    COMPILATION_ERROR = "COMPILATION_ERROR"
    PRESENTATION_ERROR = "PRESENTATION_ERROR"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    @property
    def is_terminal(self) -> bool:
        return self not in (JudgeStatus.PENDING, JudgeStatus.QUEUED, JudgeStatus.RUNNING)

    @property
    def rank(self) -> int:
        if self.is_terminal:
            return 3
        return (JudgeStatus.PENDING, JudgeStatus.QUEUED, JudgeStatus.RUNNING).index(self)

    @property
    def words(self) -> str:
        return self.value.lower().replace("_", " ")

def can_transition(current: JudgeStatus, new: JudgeStatus) -> bool:
    """Statuses only move forward; a terminal status is final."""
    return new.rank > current.rank

class Problem(Base):
    __tablename__ = "problems"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contest_id = Column(Integer, nullable=True)
    title = Column(String(200), default="")
    time_limit = Column(Integer, default=DEFAULT_TIME_LIMIT)  # seconds
    memory_limit = Column(Integer, default=DEFAULT_MEMORY_LIMIT)  # MB
    created_at = Column(DateTime, default=datetime.utcnow)

class TestCase(Base):
    __tablename__ = "test_cases"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True, autoincrement=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False, index=True)
    input = Column(Text, nullable=False, default="")
    expected_output = Column(Text, nullable=False, default="")
    is_hidden = Column(Boolean, default=False)

class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True)
    problem_id = Column(Integer, ForeignKey("problems.id"), nullable=False, index=True)
    contest_id = Column(Integer, nullable=True)
    code = Column(Text, nullable=False)
    language = Column(String(20), nullable=False)
    status = Column(String(32), default=JudgeStatus.PENDING.value, nullable=False)
    score = Column(Integer, nullable=True)  # set once, at terminal state
    execution_time = Column(Integer, nullable=True)  # ms
    memory_used = Column(Integer, nullable=True)  # KB
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_session():
    async with async_session() as session:
        yield session
