"""
/api/sessions – shared commute sessions and their live intersection
"""
from __future__ import annotations
from flask import Blueprint, current_app, request, jsonify

from commonground.errors import (
    ConstraintNotFound, InvalidConstraint, RecomputeConflict, SessionNotFound,
)
from commonground.models import Constraint, changes_from_dict
from commonground.sessions import ConstraintSetManager, MutationOutcome
from commonground.util.polygon import region_feature

bp = Blueprint("sessions", __name__, url_prefix="/api")


def _manager() -> ConstraintSetManager:
    return current_app.extensions["commonground"]

def _outcome(out: MutationOutcome) -> dict:
    payload = {"intersection": out.result.to_dict(), "provisional": out.provisional}
    if out.constraint is not None:
        payload["constraint"] = out.constraint.to_dict()
    return payload


# ─── errors ─────────────────────────────────────────────────────────────────
@bp.errorhandler(SessionNotFound)
def _no_session(exc: SessionNotFound) -> tuple:
    return jsonify({"error": "Session not found"}), 404

@bp.errorhandler(ConstraintNotFound)
def _no_constraint(exc: ConstraintNotFound) -> tuple:
    return jsonify({"error": "Constraint not found"}), 404

@bp.errorhandler(InvalidConstraint)
def _bad_constraint(exc: InvalidConstraint) -> tuple:
    return jsonify({"error": str(exc)}), 400

@bp.errorhandler(RecomputeConflict)
def _busy(exc: RecomputeConflict) -> tuple:
    return jsonify({"error": "Session busy, retry"}), 409


# ─── routes ─────────────────────────────────────────────────────────────────
@bp.post("/sessions")
def create() -> tuple:
    return jsonify({"sessionId": _manager().create_session()}), 201

@bp.get("/sessions/<session_id>")
def show(session_id: str) -> tuple:
    states, result = _manager().snapshot(session_id)
    constraints = [
        dict(st.constraint.to_dict(), regionStatus=st.status, regionError=st.error)
        for st in states
    ]
    # light layers for the map in the UI
    features = [
        region_feature(st.region, constraintId=st.constraint.id,
                       mode=st.constraint.mode.value, index=idx)
        for idx, st in enumerate(states) if st.region is not None
    ]
    return jsonify({
        "sessionId": session_id,
        "constraints": constraints,
        "regions": {"type": "FeatureCollection", "features": features},
        "intersection": result.to_dict(),
    }), 200

@bp.get("/sessions/<session_id>/intersection")
def intersection(session_id: str) -> tuple:
    return jsonify(_manager().current_intersection(session_id).to_dict()), 200

@bp.post("/sessions/<session_id>/constraints")
def add(session_id: str) -> tuple:
    data = request.get_json(silent=True) or {}
    out = _manager().add_constraint(session_id, Constraint.from_dict(data))
    return jsonify(_outcome(out)), 201

@bp.put("/sessions/<session_id>/constraints/<constraint_id>")
def update(session_id: str, constraint_id: str) -> tuple:
    data = request.get_json(silent=True) or {}
    changes = changes_from_dict(data)
    if not changes:
        return jsonify({"error": "Nothing to update"}), 400
    out = _manager().update_constraint(session_id, constraint_id, **changes)
    return jsonify(_outcome(out)), 200

@bp.delete("/sessions/<session_id>/constraints/<constraint_id>")
def remove(session_id: str, constraint_id: str) -> tuple:
    out = _manager().remove_constraint(session_id, constraint_id)
    return jsonify(dict(_outcome(out), success=True)), 200

@bp.post("/sessions/<session_id>/sync")
def sync(session_id: str) -> tuple:
    """Change-notification hook: the full current constraint list."""
    data = request.get_json(silent=True) or {}
    rows = data.get("constraints")
    if not isinstance(rows, list):
        return jsonify({"error": "constraints list required"}), 400
    for row in rows:
        if not isinstance(row, dict) or not row.get("id"):
            return jsonify({"error": "every constraint needs an id"}), 400
    out = _manager().sync_constraints(session_id, [Constraint.from_dict(r) for r in rows])
    return jsonify(_outcome(out)), 200
