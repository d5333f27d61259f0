"""Request payload helpers."""
from flask import request

from vialworks.exceptions import ValidationError


def get_payload() -> dict:
    """JSON body, or form fields for form posts."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError('Malformed JSON body')
        if not isinstance(data, dict):
            raise ValidationError('JSON body must be an object')
        return data
    return request.form.to_dict()
