from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..game.themes import THEME_SUGGESTIONS, pick_themes

bp = Blueprint("themes", __name__)


@bp.get("/themes")
def get_themes():
    if request.args.get("count") is None:
        return jsonify({"themes": list(THEME_SUGGESTIONS)})

    try:
        count = int(request.args.get("count", "1"))
    except ValueError:
        count = 1

    exclude = request.args.get("exclude", "")
    return jsonify({"themes": pick_themes(count, exclude=exclude)})
