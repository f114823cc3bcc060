from flask import Blueprint

bp = Blueprint("groups", __name__)

from masterleague.routes.groups import routes  # noqa: F401, E402
