"""
Blog service - minimal configuration example.

Relations are inferred from field names only:
- Post.idUser + User.posts  -> post belongs to one user
- Post.tags   + Tag.posts   -> posts and tags are many-to-many

Usage:
    DATABASE_URL=sqlite+aiosqlite:///blog.db uvicorn example.blog.main:app

    curl -X POST localhost:8000/users/ -d '{"name": "Ann", "uid": "ann"}'
    curl -X POST localhost:8000/tags/ -d '{"name": "python"}'
    curl -X POST localhost:8000/posts/ -d '{"title": "Hello World", "idUser": 1, "tags": [1]}'
    curl "localhost:8000/posts/?q=hello&include=tags"
    curl localhost:8000/posts/hello-world
    curl localhost:8000/stats
"""

from fastapi import Depends
from sqlalchemy import Column, ForeignKey, Integer, JSON, String, Table, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import relationship

from autocrud import CrudOptions, UpsertRule, create_service_app
from autocrud.service import Base, get_session


post_tags = Table(
    "post_tags",
    Base.metadata,
    Column("post_id", ForeignKey("posts.id"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    uid = Column(String(64), unique=True)
    name = Column(String(100), nullable=False)
    metas = Column(JSON, default=dict)

    posts = relationship("Post", back_populates="user")


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    uid = Column(String(200), unique=True)
    idUser = Column(Integer, ForeignKey("users.id"))

    user = relationship("User", back_populates="posts")
    tags = relationship("Tag", secondary=post_tags, back_populates="posts")


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False)

    posts = relationship("Post", secondary=post_tags, back_populates="tags")


app = create_service_app(
    "blog",
    Base,
    options={
        "post": CrudOptions(
            queryable_fields=["title", "user.name"],
            upsert_rules={"uid": UpsertRule(slugify="title")},
        ),
        "user": CrudOptions(queryable_fields=["name"]),
    },
)


@app.get("/stats")
async def stats(session: AsyncSession = Depends(get_session)):
    """Row counts next to the generated CRUD routes."""
    return {
        model.__tablename__: await session.scalar(select(func.count()).select_from(model))
        for model in (User, Post, Tag)
    }
