from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..media.youtube import SearchError, search_videos

bp = Blueprint("search", __name__)


@bp.get("/search")
def search():
    query = request.args.get("q", "").strip()
    if not query:
        return jsonify({"error": "missing_query"}), 400

    api_key = current_app.config.get("YOUTUBE_API_KEY", "")
    if not api_key:
        return jsonify({"error": "search_unavailable"}), 503

    try:
        results = search_videos(
            query,
            api_key=api_key,
            max_results=current_app.config.get("YOUTUBE_MAX_RESULTS", 12),
            timeout=current_app.config.get("SEARCH_TIMEOUT_SEC", 10),
        )
    except SearchError:
        return jsonify({"error": "search_failed"}), 502

    return jsonify({"results": [r.to_dict() for r in results]})
