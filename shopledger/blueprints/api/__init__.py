from flask import Blueprint

api_bp = Blueprint('api', __name__)

# Import route module to register views
from . import routes  # noqa: E402,F401
