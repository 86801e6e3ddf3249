from flask import Blueprint

rede_bp = Blueprint("rede", __name__, url_prefix="/rede")

from redemulher.rede import routes  # noqa: E402,F401
