"""Utility functions for the helpdesk JSON API."""
from typing import Optional

from flask import request

from app.errors import ValidationError


def first_form_error(form) -> Optional[str]:
    """
    Return the first validation error of a WTForms form.

    Examples:
        >>> first_form_error(form)  # title missing
        'title: This field is required.'
    """
    for field_name, errors in form.errors.items():
        if errors:
            return f'{field_name}: {errors[0]}'
    return None


def validate_form(form) -> None:
    """Validate a submitted form, raising ValidationError with the first error."""
    if not form.validate_on_submit():
        raise ValidationError(first_form_error(form) or 'Invalid request')


def get_json_body() -> dict:
    """Return the JSON request body as dict (empty dict if missing or invalid)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_int_arg(name: str) -> Optional[int]:
    """Read an optional integer query parameter."""
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'Invalid value for {name}: {value}')
