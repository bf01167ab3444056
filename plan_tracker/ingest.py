"""Turn uploaded plan files (JSON or CSV) into validated :class:`PlanFile` objects.

CSV layout::

    Line 1: Workout Plan Name, Total Days
    Line 2: headers (ignored)
    Line 3+: Day, Workout Name, Notes, Exercise Name, Sets, Reps, Exercise Notes

Rows sharing a day index are merged into one day; the first row for a day
supplies its name and notes.
"""

import json
import logging
import os
from typing import Dict, List

from pydantic import ValidationError

from plan_tracker.schemas import PlanFile, format_validation_error, validate_plan

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ('json', 'csv')
ROW_COLUMNS = 7


class PlanFileError(ValueError):
    """Raised when an uploaded plan cannot be turned into a valid plan."""


def parse_plan_upload(filename: str, content: bytes) -> PlanFile:
    """Parse an uploaded file, picking the format from its extension."""
    extension = os.path.splitext(filename)[1].lstrip('.').lower()
    if extension not in SUPPORTED_FORMATS:
        raise PlanFileError('Unsupported file type. Please upload a JSON or CSV file.')
    return parse_plan(content, extension)


def parse_plan(content: bytes, fmt: str) -> PlanFile:
    if fmt == 'json':
        return parse_json_plan(content)
    if fmt == 'csv':
        return parse_csv_plan(content)
    raise PlanFileError(f'Unsupported plan format: {fmt!r}')


def _decode(content: bytes) -> str:
    try:
        return content.decode('utf-8-sig')
    except UnicodeDecodeError as exc:
        raise PlanFileError('Plan files must be UTF-8 encoded.') from exc


def parse_json_plan(content: bytes) -> PlanFile:
    try:
        data = json.loads(_decode(content))
    except json.JSONDecodeError as exc:
        raise PlanFileError('Invalid JSON file. Please check the file format.') from exc
    try:
        plan = validate_plan(data)
    except ValidationError as exc:
        raise PlanFileError(f'Invalid JSON format: {format_validation_error(exc)}') from exc
    logger.debug("Parsed JSON plan %r with %d day(s)", plan.name, len(plan.workouts))
    return plan


def split_csv_line(line: str) -> List[str]:
    """Split one CSV line on commas, treating commas inside double quotes as text.

    Quote characters only toggle the quoted state; they never end up in a field.
    """
    fields = []
    current = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            fields.append(''.join(current))
            current = []
        else:
            current.append(char)
    fields.append(''.join(current))
    return fields


def _parse_int(value: str, message: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise PlanFileError(message) from exc


def parse_csv_plan(content: bytes) -> PlanFile:
    lines = [line.strip() for line in _decode(content).split('\n')]
    lines = [line for line in lines if line]
    if len(lines) < 3:
        raise PlanFileError('CSV file must contain at least 3 lines')

    plan_info = split_csv_line(lines[0])
    if len(plan_info) < 2:
        raise PlanFileError('First line must contain: Workout Plan Name, Total Days')
    name = plan_info[0]
    total_days = _parse_int(plan_info[1], 'Total days must be a number')

    days: Dict[int, dict] = {}
    for index, line in enumerate(lines[2:], start=3):
        row = split_csv_line(line)
        if len(row) < ROW_COLUMNS:
            raise PlanFileError(
                f'Line {index} has insufficient columns. Expected: Day, Workout Name, '
                'Notes, Exercise Name, Sets, Reps, Exercise Notes'
            )
        day = _parse_int(row[0], f'Day in line {index} must be a number')
        sets = _parse_int(row[4], f'Sets in line {index} must be a number')

        if day not in days:
            days[day] = {'day': day, 'name': row[1], 'notes': row[2], 'exercises': []}
        days[day]['exercises'].append(
            {'name': row[3], 'sets': sets, 'reps': row[5], 'notes': row[6]}
        )

    try:
        plan = validate_plan({'name': name, 'totalDays': total_days, 'workouts': list(days.values())})
    except ValidationError as exc:
        raise PlanFileError(f'Invalid CSV format: {format_validation_error(exc)}') from exc
    logger.debug("Parsed CSV plan %r: %d row(s), %d day(s)", name, len(lines) - 2, len(days))
    return plan
