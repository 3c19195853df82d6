"""
HTTP surface for room settlement.

POST /functions/finalize-room       {"roomId": "..."}  -> SettlementResult
POST /functions/resume-settlement   {"roomId": "..."}  -> SettlementResult
GET  /rooms/<room_id>/settlement                       -> stored result

All routes except the read require `Authorization: Bearer <token>`.
"""

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .identity import resolve_bearer
from .logger import get_logger
from .settlement import SettlementError, SettlementOrchestrator, Unauthorized

logger = get_logger()

HTTP_STATUS = {
    "Unauthorized": 401,
    "Forbidden": 403,
    "NotFound": 404,
    "AlreadyFinalized": 409,
    "NoScores": 422,
    "OracleUnavailable": 502,
}


def _error(kind: str, message: str, status: int):
    return jsonify({"error": {"kind": kind, "message": message}}), status


def create_app(orchestrator: SettlementOrchestrator) -> Flask:
    app = Flask(__name__)
    CORS(app, allow_headers=["authorization", "x-client-info", "apikey", "content-type"])
    app.config["orchestrator"] = orchestrator

    def _caller():
        user_id = resolve_bearer(orchestrator.store, request.headers.get("Authorization"))
        if user_id is None:
            raise Unauthorized("Invalid token" if request.headers.get("Authorization") else "Unauthorized")
        return user_id

    def _room_id():
        data = request.get_json(silent=True) or {}
        room_id = data.get("roomId") if isinstance(data, dict) else None
        if not isinstance(room_id, str) or not room_id.strip():
            return None
        return room_id.strip()

    @app.errorhandler(SettlementError)
    def handle_settlement_error(e: SettlementError):
        return _error(e.kind, e.message, HTTP_STATUS.get(e.kind, 500))

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        logger.error("Unhandled error in request", path=request.path, error=str(e))
        return _error("Internal", "Internal server error", 500)

    @app.route("/functions/finalize-room", methods=["POST"])
    def finalize_room():
        """Settle a room; owner only."""
        caller = _caller()
        room_id = _room_id()
        if room_id is None:
            return _error("BadRequest", "Room ID is required", 400)
        result = orchestrator.finalize_room(room_id, caller)
        return jsonify({"success": True, **result.to_dict()})

    @app.route("/functions/resume-settlement", methods=["POST"])
    def resume_settlement():
        caller = _caller()
        room_id = _room_id()
        if room_id is None:
            return _error("BadRequest", "Room ID is required", 400)
        result = orchestrator.resume_settlement(room_id, caller)
        return jsonify({"success": True, **result.to_dict()})

    @app.route("/rooms/<room_id>/settlement")
    def get_settlement(room_id):
        result = orchestrator.get_settlement(room_id)
        if result is None:
            return _error("NotFound", "Room has not been settled", 404)
        return jsonify({
            **result.to_dict(),
            "scoring": result.scoring,
            "scores": [s.to_dict() for s in result.scores],
        })

    return app
