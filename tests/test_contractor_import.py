"""Tests for batch contractor import."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest

from errors import ValidationError
from services.contractor_import import import_contractors


@pytest.mark.asyncio
async def test_import_skips_existing_and_batch_duplicates(storage, make_contractor):
    await make_contractor(name="Gulf Coast Builders")

    result = await import_contractors(storage, [
        {"name": "gulf coast  builders ", "category": "General Contractors"},
        {"name": "Bayou State Renovations", "category": "Kitchen & Bath"},
        {"name": "BAYOU STATE RENOVATIONS", "category": "Kitchen & Bath"},
        {"name": "Precision Home Improvements", "category": "Remodeling", "location": "Westlake, LA"},
    ])

    assert (result.added, result.skipped, result.total) == (2, 2, 4)
    names = [c.name for c in await storage.list_contractors()]
    assert names == ["Gulf Coast Builders", "Bayou State Renovations", "Precision Home Improvements"]
    assert result.contractor_ids == [2, 3]


@pytest.mark.asyncio
async def test_invalid_item_rejects_whole_batch(storage):
    with pytest.raises(ValidationError) as exc:
        await import_contractors(storage, [
            {"name": "Good Co", "category": "Roofing"},
            {"name": "Bad Co", "category": "Roofing", "rating": 9},
        ])

    assert exc.value.errors[0]["loc"] == [1, "rating"]
    assert await storage.list_contractors() == []


@pytest.mark.asyncio
async def test_empty_batch(storage):
    result = await import_contractors(storage, [])
    assert (result.added, result.skipped, result.total) == (0, 0, 0)
