"""
Flask JSON API over the alert engine.

Endpoints (consumed by dashboard clients):
  GET    /api/rules              — All rules with current state
  POST   /api/rules              — Create a rule
  GET    /api/rules/<id>         — One rule
  PATCH  /api/rules/<id>         — Partial update
  DELETE /api/rules/<id>         — Delete (idempotent)
  GET    /api/alerts?limit=N     — Alert history, most recent first
  POST   /api/alerts/<id>/ack    — Acknowledge an alert (idempotent)
  DELETE /api/alerts             — Clear alert history
  GET    /api/status             — Engine status

Started via: python main.py web [--port 5000] [--host 127.0.0.1]
"""
import logging

from flask import Flask, jsonify, request

from models.errors import InvalidRule, NotFound, PersistenceFailure

logger = logging.getLogger("cfalerts.web.app")

MAX_ALERT_LIMIT = 500


def create_app(config: dict, engine) -> Flask:
    """
    Factory function. Receives an initialized AlertEngine from main.py or wsgi.py.

    Args:
        config: Application config dict
        engine: AlertEngine instance shared with the scheduler
    """
    app = Flask(__name__)
    app.config["ENGINE"] = engine
    app.config["ALERT_CONFIG"] = config

    # ─── Error Mapping ───────────────────────────────────

    @app.errorhandler(InvalidRule)
    def handle_invalid_rule(e):
        return jsonify({"error": str(e), "field": e.field}), 400

    @app.errorhandler(NotFound)
    def handle_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(PersistenceFailure)
    def handle_persistence_failure(e):
        logger.error(f"Storage failure serving {request.path}: {e}")
        return jsonify({"error": "Storage unavailable"}), 503

    def _rule_json(rule):
        d = rule.to_dict()
        d["state"] = engine.rule_state(rule.id).value
        return d

    def _json_body():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise InvalidRule("Request body must be a JSON object")
        return data

    # ─── Rules ───────────────────────────────────────────

    @app.route("/api/rules", methods=["GET"])
    def list_rules():
        rules = engine.list_rules()
        return jsonify({"rules": [_rule_json(r) for r in rules], "count": len(rules)})

    @app.route("/api/rules", methods=["POST"])
    def create_rule():
        data = _json_body()
        rule_id = engine.create_rule(data)
        return jsonify(_rule_json(engine.get_rule(rule_id))), 201

    @app.route("/api/rules/<rule_id>", methods=["GET"])
    def get_rule(rule_id):
        return jsonify(_rule_json(engine.get_rule(rule_id)))

    @app.route("/api/rules/<rule_id>", methods=["PATCH"])
    def update_rule(rule_id):
        rule = engine.update_rule(rule_id, _json_body())
        return jsonify(_rule_json(rule))

    @app.route("/api/rules/<rule_id>", methods=["DELETE"])
    def delete_rule(rule_id):
        engine.delete_rule(rule_id)
        return "", 204

    # ─── Alerts ──────────────────────────────────────────

    @app.route("/api/alerts", methods=["GET"])
    def list_alerts():
        try:
            limit = int(request.args.get("limit", 50))
        except ValueError:
            limit = 0
        if limit < 1:
            return jsonify({"error": "limit must be a positive integer"}), 400
        limit = min(limit, MAX_ALERT_LIMIT)
        alerts = engine.list_alerts(limit=limit)
        return jsonify({"alerts": [a.to_dict() for a in alerts], "count": len(alerts)})

    @app.route("/api/alerts/<alert_id>/ack", methods=["POST"])
    def acknowledge_alert(alert_id):
        return jsonify(engine.acknowledge(alert_id).to_dict())

    @app.route("/api/alerts", methods=["DELETE"])
    def clear_alerts():
        removed = engine.clear_history()
        return jsonify({"removed": removed})

    @app.route("/api/status")
    def status():
        return jsonify(engine.status())

    return app
