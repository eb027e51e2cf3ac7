"""Models package."""

from .program import Program
from .category import Category
from .language import Language
from .id_counter import IdCounter
from .user_profile import UserProfile
from .program_metadata import ProgramMetadata
from .search_log import SearchLog
