from .admin import Admin
from .year import Year
from .module import Module
from .subject import Subject
from .lecture import Lecture
from .quiz_result import QuizResult

__all__ = [
    "Admin",
    "Year",
    "Module",
    "Subject",
    "Lecture",
    "QuizResult"
]
