"""Course file loading and per-question validation."""
import json
from pathlib import Path

import yaml

from repeatrom.errors import CourseFileError
from repeatrom.models import ParseResult, ValidationError


def validate_question(item) -> str | None:
    """Return the reason a raw question is invalid, or None if it is fine."""
    if not isinstance(item, dict):
        return "Question must be an object"
    text = item.get("question")
    if not isinstance(text, str) or not text.strip():
        return "Missing or invalid 'question' field"
    options = item.get("options")
    if not isinstance(options, list) or len(options) < 2:
        return "Options must be an array with at least 2 items"
    if not all(isinstance(o, str) for o in options):
        return "Options must all be strings"
    if len(set(options)) != len(options):
        return "Options must not contain duplicates"
    if not isinstance(item.get("correct_option"), str):
        return "Missing or invalid 'correct_option' field"
    if not isinstance(item.get("explanation"), str):
        return "Missing or invalid 'explanation' field"
    if item["correct_option"] not in options:
        return "correct_option must match one of the options exactly"
    return None


def parse_questions_json(data) -> ParseResult:
    """Split raw course data into valid questions and indexed validation errors."""
    if not isinstance(data, list):
        return ParseResult(errors=[ValidationError(index=0, reason="Input must be an array")])
    result = ParseResult()
    for index, item in enumerate(data):
        reason = validate_question(item)
        if reason is None:
            result.questions.append(item)
        else:
            result.errors.append(ValidationError(index=index, reason=reason))
    return result


def read_course_file(file_path: str):
    """Load the raw question list from a .json or .yaml course file."""
    path = Path(file_path)
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CourseFileError(f"Cannot read {file_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise CourseFileError(f"{file_path} is not UTF-8 text: {e}") from e
    try:
        if suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise CourseFileError(f"Cannot parse {path.name}: {e}") from e
