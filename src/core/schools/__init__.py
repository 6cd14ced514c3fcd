from src.core.schools.models import School, SchoolType
from src.core.schools.scope import SchoolScope

__all__ = ["School", "SchoolType", "SchoolScope"]
