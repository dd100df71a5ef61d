"""Test fixtures for facility import service."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.facility_import.app.core.models import Base
from shared.utils.db import build_engine, build_session_factory

from geocoding_fakes import CUPERTINO_ADDRESS, FakeGeocoder


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine, so several sessions can share it."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'facility_import.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def sample_rows() -> list[dict]:
    return [
        {"name": "Apple Park Gym", "website": "https://example.com", "raw_address": CUPERTINO_ADDRESS},
        {"name": "Nowhere Fitness", "website": None, "raw_address": "asdkfj not a real place"},
    ]


@pytest.fixture
def sample_google_response() -> dict:
    """Google Geocoding API response for a single exact match."""
    return {
        "status": "OK",
        "results": [
            {
                "formatted_address": "1 Infinite Loop, Cupertino, CA 95014, USA",
                "geometry": {"location": {"lat": 37.3318, "lng": -122.0312}},
                "address_components": [
                    {"long_name": "1", "short_name": "1", "types": ["street_number"]},
                    {"long_name": "Cupertino", "short_name": "Cupertino", "types": ["locality", "political"]},
                    {
                        "long_name": "California",
                        "short_name": "CA",
                        "types": ["administrative_area_level_1", "political"],
                    },
                ],
            }
        ],
    }
