# nexus_search/schemas.py
from typing import List
from pydantic import BaseModel, Field


class Source(BaseModel):
    title: str
    url: str


class SearchRecord(BaseModel):
    id: str
    query: str
    response: str
    sources: List[Source] = Field(default_factory=list)
    created_at: int  # ms since epoch


class SearchResult(BaseModel):
    response: str
    sources: List[Source] = Field(default_factory=list)


class SearchRequest(BaseModel):
    # Blank queries are rejected by the gateway, after the identity check
    query: str
