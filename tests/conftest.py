"""
Test configuration for the discussions API.

MongoDB is replaced by mongomock-motor; the FastAPI app is reached through
httpx's ASGI transport with the service dependency overridden, so no server
or database has to be running.
"""
import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("ADMIN_USER_IDS", None)

from typing import AsyncGenerator, Dict

import httpx
import pytest
import pytest_asyncio
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from core.discussions.service import DiscussionService
from main_async import app as fastapi_app
from models.discussion_model import CurrentUser
from routes.discussion_route import get_discussion_service


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()["ca_prep_test"]


@pytest_asyncio.fixture
async def service(mongo_db) -> DiscussionService:
    svc = DiscussionService(mongo_db["discussions"], mongo_db["users"])
    await svc.ensure_indexes()
    return svc


@pytest_asyncio.fixture
async def users(mongo_db) -> Dict[str, CurrentUser]:
    """alice and bob are regular users, root is an admin"""
    docs = {
        "alice": {"_id": ObjectId(), "fullName": "Alice Sharma", "email": "alice@example.com", "role": "user"},
        "bob": {"_id": ObjectId(), "fullName": "Bob Mehta", "email": "bob@example.com", "role": "user"},
        "root": {"_id": ObjectId(), "email": "root@example.com", "role": "admin"},
    }
    await mongo_db["users"].insert_many(list(docs.values()))
    return {name: CurrentUser(id=str(d["_id"]), role=d["role"]) for name, d in docs.items()}


@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an AsyncClient for testing FastAPI routes.

    Yields:
        AsyncClient: HTTP test client bound to the mocked store
    """
    fastapi_app.dependency_overrides[get_discussion_service] = lambda: service
    transport = httpx.ASGITransport(app=fastapi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def asgi_transport(service):
    """Transport for DiscussionAPI talking straight to the app"""
    fastapi_app.dependency_overrides[get_discussion_service] = lambda: service
    yield httpx.ASGITransport(app=fastapi_app)
    fastapi_app.dependency_overrides.clear()

