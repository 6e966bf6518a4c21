"""Pydantic models for REST API request/response validation."""

from __future__ import annotations

from pydantic import BaseModel, Field


# --- Health ---

class HealthOut(BaseModel):
    status: str
    version: str
    redis: bool


# --- Bot ---

class AskBody(BaseModel):
    question: str = Field(..., min_length=1, max_length=3000)


class AskOut(BaseModel):
    answer: str
    routes: list[str]
    cached: bool
    chunks: list[str]


# --- Topics and posts ---

class TrendingOut(BaseModel):
    bucket: str
    topics: list[str]


class PostsOut(BaseModel):
    topics: list[str]
    posts: list[str]
