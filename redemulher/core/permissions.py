from __future__ import annotations

from functools import wraps

from flask import abort, redirect, url_for
from flask_login import current_user

from redemulher.core.models import AppRole


def require_approved(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if not current_user.is_approved:
            return redirect(url_for("aguardando_aprovacao"))
        return fn(*args, **kwargs)

    return wrapper


def require_role(role: AppRole | str):
    minimum = AppRole(role)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if not current_user.has_role(minimum):
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
