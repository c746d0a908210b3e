"""Knowledge document model."""

from automatenance.models.base import Base, new_id
from sqlalchemy import Column, Integer, String, Text


class KnowledgeDoc(Base):
    """Short maintenance reference snippet used as prompt context.

    A null make, model or year matches any vehicle.
    """

    __tablename__ = "ai_docs"

    id = Column(String(36), primary_key=True, default=new_id)
    text = Column(Text, nullable=False)
    source = Column(String(200), nullable=False)
    url = Column(String(500))
    make = Column(String(100), index=True)
    model = Column(String(100))
    year = Column(Integer)

    def __repr__(self):
        return f"<KnowledgeDoc(id={self.id}, source='{self.source}')>"
