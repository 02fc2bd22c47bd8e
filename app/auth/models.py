import uuid

from sqlalchemy import Column, DateTime, String, UniqueConstraint, Uuid

from app.db.session import Base, utcnow


class User(Base):
    """Student, teacher or admin account. Owned by the user-management collaborator; read-only here."""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        {"schema": "auth"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    # STUDENT | TEACHER | ADMIN
    role = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime, default=utcnow, nullable=False)
