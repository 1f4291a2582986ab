"""HTTP surface for the card editor: preview, save, publish, regenerate, download."""

import io
from dataclasses import asdict

from flask import Flask, abort, jsonify, request, send_file

from cardqr.logging import audit, get_logger
from cardqr.records import RecordNotFound
from cardqr.service import CardQRService, Outcome
from cardqr.style import PRESETS, resolve

log = get_logger("server")

_STATUS = {
    "render": 500,
    "timeout": 504,
    "logo": 422,
    "publish": 502,
    "no_payload": 409,
    "busy": 409,
}


def _card_json(outcome: Outcome):
    body = {
        "card": asdict(outcome.card) if outcome.card else None,
        "regenerated": outcome.regenerated,
        "notice": asdict(outcome.notice) if outcome.notice else None,
    }
    if outcome.ok:
        return jsonify(body)
    return jsonify(body), _STATUS.get(outcome.notice.kind, 500)


def _error_json(outcome: Outcome):
    notice = outcome.notice
    return jsonify({"error": notice.message, "kind": notice.kind}), _STATUS.get(notice.kind, 500)


def _png(data: bytes, download_name: str | None = None):
    return send_file(
        io.BytesIO(data),
        mimetype="image/png",
        as_attachment=download_name is not None,
        download_name=download_name,
    )


def create_app(service: CardQRService) -> Flask:
    """Create the Flask app around a configured service."""
    app = Flask(__name__)

    @app.errorhandler(RecordNotFound)
    def card_not_found(exc):
        audit("http.404", logger=log, card=str(exc))
        return jsonify({"error": "Card not found", "kind": "not_found"}), 404

    @app.route("/api/qr/presets")
    def list_presets():
        return jsonify({name: resolve(p).to_dict() for name, p in PRESETS.items()})

    @app.route("/api/qr/preview", methods=["POST"])
    def preview():
        data = request.get_json(silent=True) or {}
        payload = data.get("url")
        if not payload:
            return jsonify({"error": "Missing 'url' field", "kind": "bad_request"}), 400
        outcome = service.preview(payload, data.get("style"))
        if not outcome.ok:
            return _error_json(outcome)
        return _png(outcome.image)

    @app.route("/api/cards/<card_id>", methods=["PUT"])
    def save_card(card_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            abort(400)
        return _card_json(service.save(card_id, data))

    @app.route("/api/cards/<card_id>/publish", methods=["POST"])
    def publish_card(card_id):
        data = request.get_json(silent=True) or {}
        return _card_json(service.publish(card_id, published=bool(data.get("published", True))))

    @app.route("/api/cards/<card_id>/qr/regenerate", methods=["POST"])
    def regenerate(card_id):
        return _card_json(service.regenerate(card_id))

    @app.route("/api/cards/<card_id>/qr/download")
    def download(card_id):
        outcome = service.regenerate(card_id)
        if not outcome.ok:
            return _error_json(outcome)
        return _png(outcome.image, download_name=service.download_name(card_id))

    return app
