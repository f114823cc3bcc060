from flask import Blueprint

bp = Blueprint("auth", __name__)

from masterleague.routes.auth import routes  # noqa: F401, E402
