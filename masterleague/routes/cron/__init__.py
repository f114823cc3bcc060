from flask import Blueprint

bp = Blueprint("cron", __name__)

from masterleague.routes.cron import routes  # noqa: F401, E402
