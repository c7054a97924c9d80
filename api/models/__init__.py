from models.plan import Plan
from models.contractor import Contractor
from models.subscription import Subscription
from models.lead import Lead
from models.project_type import ProjectType
from models.review import Review
from models.user import User

__all__ = [
    "Plan", "Contractor", "Subscription", "Lead",
    "ProjectType", "Review", "User",
]
