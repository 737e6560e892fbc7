"""
Database module for persistence.

Provides SQLAlchemy models, the repository pattern and the transactional
application store used by the pipeline.
"""

from candidate_pipeline.db.engine import create_engine, create_session_factory, init_db
from candidate_pipeline.db.models import ApplicationModel, Base, JobModel
from candidate_pipeline.db.repository import ApplicationRepository, JobRepository
from candidate_pipeline.db.store import ApplicationStore

__all__ = [
    "Base",
    "ApplicationModel",
    "JobModel",
    "ApplicationRepository",
    "JobRepository",
    "ApplicationStore",
    "create_engine",
    "create_session_factory",
    "init_db",
]
