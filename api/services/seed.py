"""
Demo catalog for local runs (SEED_DEMO_DATA=true).

Seeding is skipped entirely once any plan exists, so restarting the API never
duplicates rows. Sample contractors carry fixed coordinates so the radius
filter works without a geocoding provider.
"""

import logging

from schemas import ContractorCreate, PlanCreate, ProjectTypeCreate
from services.clock import utcnow
from storage import DirectoryStorage

logger = logging.getLogger(__name__)

DEMO_PLANS = [
    PlanCreate(
        name="Basic", monthly_lead_quota=5, price=29.99,
        features=["Basic listing", "Email notifications", "Lead tracking"],
    ),
    PlanCreate(
        name="Professional", monthly_lead_quota=15, price=79.99,
        features=["Enhanced listing", "Priority placement", "Advanced analytics", "Phone support"],
    ),
    PlanCreate(
        name="Premium", monthly_lead_quota=50, price=149.99,
        features=["Premium listing", "Top placement", "Unlimited project types", "24/7 support", "Custom branding"],
    ),
]

DEMO_PROJECT_TYPES = [
    ProjectTypeCreate(name="Bathroom Remodeling", slug="bathroom-remodeling"),
    ProjectTypeCreate(name="Kitchen Remodeling", slug="kitchen-remodeling"),
    ProjectTypeCreate(name="Custom Homes", slug="custom-homes"),
    ProjectTypeCreate(name="New Home Construction", slug="new-home-construction"),
    ProjectTypeCreate(name="Garage Building", slug="garage-building"),
]

# (contractor, latitude, longitude)
DEMO_CONTRACTORS = [
    (
        ContractorCreate(
            name="Gulf Coast Builders",
            category="General Contractors",
            description="Full-service residential and light commercial construction.",
            location="Lake Charles, LA",
            phone="(337) 555-0303",
            email="info@gulfcoastbuilders.com",
            rating=4.7, review_count=18, years_experience=12,
            project_types=["new-home-construction", "garage-building"],
            specialties=["Residential", "Commercial", "Storm Damage"],
            service_radius=75, free_estimate=True, licensed=True,
        ),
        30.2266, -93.2174,
    ),
    (
        ContractorCreate(
            name="Finishes That Last",
            category="Interior Design & Renovation",
            description="Interior finishing: flooring, paint and custom millwork.",
            location="Nederland, TX",
            address="723 N 16th St, Nederland, TX 77627",
            phone="(409) 555-0202",
            rating=4.9, review_count=1, years_experience=8,
            project_types=["bathroom-remodeling", "kitchen-remodeling"],
            specialties=["Interior Finishing", "Flooring", "Paint"],
            service_radius=30, licensed=True,
        ),
        29.9744, -93.9924,
    ),
    (
        ContractorCreate(
            name="Bayou State Renovations",
            category="Kitchen & Bath Remodeling",
            description="Kitchen and bathroom remodeling from design to completion.",
            location="Sulphur, LA",
            phone="(337) 555-0404",
            rating=5.0, review_count=32, years_experience=10,
            project_types=["kitchen-remodeling", "bathroom-remodeling"],
            specialties=["Kitchen Remodeling", "Bathroom Remodeling", "Design"],
            service_radius=40, licensed=True,
        ),
        30.2366, -93.3774,
    ),
    (
        ContractorCreate(
            name="Precision Home Improvements",
            category="Home Remodeling Specialist",
            description="From small repairs to complete home makeovers.",
            location="Westlake, LA",
            phone="(337) 555-0606",
            rating=4.8, review_count=15, years_experience=7,
            project_types=["bathroom-remodeling", "kitchen-remodeling"],
            specialties=["Home Improvements", "Repairs", "Remodeling"],
            service_radius=35, licensed=True,
        ),
        30.2421, -93.2507,
    ),
]


async def seed_demo_data(storage: DirectoryStorage) -> bool:
    """Load the demo catalog into an empty store. Returns True if anything was written."""
    if await storage.list_plans():
        logger.info("Demo seed skipped: catalog already populated")
        return False

    now = utcnow()
    for plan in DEMO_PLANS:
        await storage.create_plan(plan, now)
    for project_type in DEMO_PROJECT_TYPES:
        await storage.create_project_type(project_type, now)
    for contractor, lat, lng in DEMO_CONTRACTORS:
        await storage.create_contractor(contractor, now, latitude=lat, longitude=lng)

    logger.info(
        "Demo data seeded: %d plans, %d project types, %d contractors",
        len(DEMO_PLANS), len(DEMO_PROJECT_TYPES), len(DEMO_CONTRACTORS),
    )
    return True
