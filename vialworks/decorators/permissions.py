"""
Access decorators for the back-office API.
"""
import hmac
from functools import wraps
from flask import current_app, request

from vialworks.exceptions import UnauthorizedError


def _presented_token():
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[len('Bearer '):].strip()
    return request.headers.get('X-Admin-Token')


def admin_required(f):
    """
    Require the back-office token.

    Usage:
        @admin_required

    The token is sent as 'Authorization: Bearer <token>' or 'X-Admin-Token'.
    Without a configured ADMIN_API_TOKEN every request is refused.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('ADMIN_API_TOKEN')
        if not expected:
            raise UnauthorizedError('Back-office API is not configured', status_code=403)

        token = _presented_token()
        if not token:
            raise UnauthorizedError('Missing API token')
        if not hmac.compare_digest(token.encode('utf-8'), expected.encode('utf-8')):
            raise UnauthorizedError('Invalid API token', status_code=403)

        return f(*args, **kwargs)

    return decorated_function
