from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from drive.models.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash
    email = Column(String(255), unique=True, nullable=True)

    # One user → many resources
    resources = relationship("Resource", back_populates="owner")
    sessions = relationship("UserSession", back_populates="user")
