# File: backend/attendance_engine/utils/decorators.py
"""Custom decorators for authorization."""
from functools import wraps

from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from attendance_engine.utils.helpers import error_response

STUDENT_ROLE = 'student'


def student_required(f):
    """Decorator to require a valid JWT carrying the student role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()

        if not get_jwt_identity():
            return error_response("User not found", 404)

        if get_jwt().get('role') != STUDENT_ROLE:
            return error_response("Student access required", 403)

        return f(*args, **kwargs)
    return decorated_function
