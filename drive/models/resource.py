# drive/models/resource.py
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship

from drive.models.database import Base, utcnow

RESOURCE_TYPES = ("file", "folder")


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(*RESOURCE_TYPES, name="resource_type"), nullable=False)
    name = Column(String(255), nullable=False)          # Name the user sees
    storage_key = Column(String(512), nullable=True)    # Blob key, files only
    # Declared for nested folders; nothing populates it yet
    parent_id = Column(Integer, ForeignKey("resources.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Many resources → one owner (User)
    owner = relationship("User", back_populates="resources")

    @property
    def is_file(self) -> bool:
        return self.type == "file"
