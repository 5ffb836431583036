"""Exceptions raised by the engine and its storage adapters."""


class RepeatromError(Exception):
    """Base class for every error the engine raises on purpose."""


class NotFoundError(RepeatromError, LookupError):
    pass


class CourseNotFoundError(NotFoundError):
    def __init__(self, course_id: str):
        super().__init__(f"Course {course_id} not found")
        self.course_id = course_id


class QuestionNotFoundError(NotFoundError):
    def __init__(self, course_id: str, question_id: int):
        super().__init__(f"Question {question_id} not found in course {course_id}")
        self.course_id = course_id
        self.question_id = question_id


class ConfigNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("Configuration record is missing; run init_database() first")


class DuplicateCourseError(RepeatromError):
    def __init__(self, name: str):
        super().__init__(f"A course named {name!r} already exists.")
        self.name = name


class InvalidConfigError(RepeatromError, ValueError):
    pass


class CourseFileError(RepeatromError):
    """A course file could not be read or parsed."""
