"""
Contractor Directory: listing, search, and manager CRUD.

Search filters compose (all given filters must match):
  category  case-insensitive substring of the contractor's category
  search    case-insensitive substring of name, category, description or a specialty
  location  radius match when both ends have coordinates, else substring of location
"""

import logging

from errors import NotFound, ValidationError
from schemas import (
    ContractorCreate, ContractorResponse, ContractorSearchResult,
    ProjectTypeCreate, ProjectTypeResponse, ReviewCreate, ReviewResponse,
)
from services.clock import utcnow
from services.geo import geocode, haversine_miles
from storage import DirectoryStorage

logger = logging.getLogger(__name__)


async def _coordinates_for(data: ContractorCreate) -> tuple[float | None, float | None]:
    """Geocode the street address, falling back to the service location."""
    for query in (data.address, data.location):
        if not query:
            continue
        result = await geocode(query)
        if result:
            return result["lat"], result["lng"]
    return None, None


# ── CRUD ───────────────────────────────────────────────────

async def list_contractors(storage: DirectoryStorage) -> list[ContractorResponse]:
    return await storage.list_contractors()


async def get_contractor(storage: DirectoryStorage, contractor_id: int) -> ContractorResponse:
    contractor = await storage.get_contractor(contractor_id)
    if contractor is None:
        raise NotFound("Contractor", contractor_id)
    return contractor


async def create_contractor(storage: DirectoryStorage, data: ContractorCreate) -> ContractorResponse:
    lat, lng = await _coordinates_for(data)
    contractor = await storage.create_contractor(data, utcnow(), latitude=lat, longitude=lng)
    logger.info(
        "Contractor created: id=%s name=%s geocoded=%s",
        contractor.id, contractor.name, lat is not None,
    )
    return contractor


async def update_contractor(
    storage: DirectoryStorage, contractor_id: int, data: ContractorCreate,
) -> ContractorResponse:
    existing = await get_contractor(storage, contractor_id)

    if (data.address, data.location) == (existing.address, existing.location):
        lat, lng = existing.latitude, existing.longitude
    else:
        lat, lng = await _coordinates_for(data)

    contractor = await storage.update_contractor(contractor_id, data, utcnow(), latitude=lat, longitude=lng)
    if contractor is None:
        raise NotFound("Contractor", contractor_id)
    logger.info("Contractor updated: id=%s", contractor_id)
    return contractor


async def delete_contractor(storage: DirectoryStorage, contractor_id: int) -> None:
    if not await storage.delete_contractor(contractor_id):
        raise NotFound("Contractor", contractor_id)
    logger.info("Contractor deleted: id=%s", contractor_id)


# ── Search ─────────────────────────────────────────────────

def _contains(haystack: str | None, needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def filter_contractors(
    contractors: list[ContractorResponse],
    category: str | None = None,
    location: str | None = None,
    search: str | None = None,
    radius: float | None = None,
    origin: tuple[float, float] | None = None,
) -> list[ContractorSearchResult]:
    """
    Apply the directory filters to an in-memory list.

    `origin` is the geocoded `location`; without it the location filter is a
    plain substring match.
    """
    category = category.strip().lower() if category and category.strip() else None
    location = location.strip().lower() if location and location.strip() else None
    search = search.strip().lower() if search and search.strip() else None

    results: list[ContractorSearchResult] = []
    for contractor in contractors:
        if category and not _contains(contractor.category, category):
            continue

        if search and not (
            _contains(contractor.name, search)
            or _contains(contractor.category, search)
            or _contains(contractor.description, search)
            or any(_contains(s, search) for s in contractor.specialties)
        ):
            continue

        distance = None
        if origin is not None and contractor.latitude is not None and contractor.longitude is not None:
            distance = haversine_miles(origin[0], origin[1], contractor.latitude, contractor.longitude)
            limit = radius if radius is not None else contractor.service_radius
            if distance > limit:
                continue
        elif location and not _contains(contractor.location, location):
            continue

        results.append(ContractorSearchResult(**contractor.model_dump(), distance_miles=distance))

    if origin is not None:
        # Substring matches without coordinates sort after every measured distance
        results.sort(key=lambda c: (c.distance_miles is None, c.distance_miles or 0.0, c.id))
    else:
        results.sort(key=lambda c: c.id)
    return results


async def search_contractors(
    storage: DirectoryStorage,
    category: str | None = None,
    location: str | None = None,
    search: str | None = None,
    radius: float | None = None,
) -> list[ContractorSearchResult]:
    origin = None
    if location and location.strip():
        point = await geocode(location)
        if point:
            origin = (point["lat"], point["lng"])

    contractors = await storage.list_contractors()
    results = filter_contractors(contractors, category, location, search, radius, origin)
    logger.debug(
        "Contractor search: category=%r location=%r search=%r radius=%s origin=%s -> %d",
        category, location, search, radius, origin, len(results),
    )
    return results


# ── Project types ──────────────────────────────────────────

async def list_project_types(storage: DirectoryStorage) -> list[ProjectTypeResponse]:
    return await storage.list_project_types()


async def create_project_type(storage: DirectoryStorage, data: ProjectTypeCreate) -> ProjectTypeResponse:
    existing = await storage.list_project_types()
    if any(p.slug == data.slug for p in existing):
        raise ValidationError(f"Project type slug {data.slug!r} already exists")
    project_type = await storage.create_project_type(data, utcnow())
    logger.info("Project type created: id=%s slug=%s", project_type.id, project_type.slug)
    return project_type


# ── Reviews ────────────────────────────────────────────────

async def list_reviews(storage: DirectoryStorage, contractor_id: int) -> list[ReviewResponse]:
    await get_contractor(storage, contractor_id)
    return await storage.list_reviews(contractor_id)


async def create_review(storage: DirectoryStorage, contractor_id: int, data: ReviewCreate) -> ReviewResponse:
    await get_contractor(storage, contractor_id)
    review = await storage.create_review(contractor_id, data, utcnow())
    logger.info("Review added: id=%s contractor=%s rating=%s", review.id, contractor_id, review.rating)
    return review
