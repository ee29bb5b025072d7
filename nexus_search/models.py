# nexus_search/models.py
from sqlalchemy import Column, Integer, BigInteger, String, Text

from nexus_search.db import Base


class SearchRecord(Base):
    __tablename__ = "searches"

    # Autoincrement id doubles as the insertion sequence used to break created_at ties
    id = Column(Integer, primary_key=True, autoincrement=True)
    search_id = Column(String(36), unique=True, index=True, nullable=False)
    owner_id = Column(String(128), index=True, nullable=False)
    query = Column(Text, nullable=False)
    response = Column(Text, nullable=False, default="")
    sources_json = Column(Text, nullable=False, default="[]")
    created_at = Column(BigInteger, index=True, nullable=False)
