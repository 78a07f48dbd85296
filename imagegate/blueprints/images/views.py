"""Upload, attach, serve and remove entity images."""
import logging
from flask import Response, current_app, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from imagegate.blueprints.images import images_bp
from imagegate.errors import AssetNotFound, BadRequest, ImageError
from imagegate.models.enums import EntityType
from imagegate.services import coordinator
from imagegate.services.coordinator import Actor

logger = logging.getLogger(__name__)


class Unauthorized(ImageError):
    kind = "unauthorized"
    status_code = 401
    default_message = "Authentication required"


@images_bp.errorhandler(ImageError)
def handle_image_error(err):
    return jsonify(err.to_dict()), err.status_code


@images_bp.errorhandler(AssetNotFound)
def handle_asset_not_found(err):
    return jsonify({"error": "not_found", "message": "image not found"}), 404


@images_bp.app_errorhandler(RequestEntityTooLarge)
def handle_request_too_large(err):
    return jsonify({"error": "too_large", "message": "Image is too large"}), 413


def current_actor():
    """Identity set by the upstream auth layer."""
    header = current_app.config["USER_ID_HEADER"]
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        raise Unauthorized()
    return Actor(user_id=user_id, is_admin=user_id in current_app.config["ADMIN_USER_IDS"])


def _entity_type(raw, default=None):
    try:
        return EntityType.parse(raw, default=default)
    except ValueError:
        raise BadRequest("Invalid entity type")


def _read_image_field():
    file = request.files.get("image")
    if file is None:
        raise BadRequest("Image file is required")
    return file.read(), file.mimetype


@images_bp.route("/upload", methods=["POST"])
def upload():
    """Moderate an image and hand back an upload token when approved.

    Every moderation outcome carries a status and, unless approved, a
    reason. Input errors are plain ``{error, message}`` bodies.
    """
    actor = current_actor()
    entity_type = _entity_type(request.form.get("entityType"), default=EntityType.OTHER)
    data, claimed = _read_image_field()
    decision, token = coordinator.moderate_upload(actor, entity_type, data, claimed)

    response = {"status": decision.status.value}
    if decision.reason:
        response["reason"] = decision.reason
    if token:
        response["uploadToken"] = token
    return jsonify(response), 200


@images_bp.route("/entities/<entity_type>/<entity_id>/image", methods=["POST"])
def attach_image(entity_type, entity_id):
    """Attach an image: multipart bytes inline, or JSON ``{uploadToken}``."""
    actor = current_actor()
    entity_type = _entity_type(entity_type)

    if request.is_json:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            raise BadRequest("Invalid request body")
        token = str(body.get("uploadToken") or body.get("uploadId") or "").strip()
        if not token:
            raise BadRequest("uploadToken is required")
        asset = coordinator.attach_from_token(actor, entity_type, entity_id, token)
    else:
        data, claimed = _read_image_field()
        asset = coordinator.upload_and_attach(actor, entity_type, entity_id, data, claimed)

    return jsonify({
        "status": "APPROVED",
        "message": "Image uploaded successfully",
        "assetId": asset.id,
        "imageUrl": f"/assets/{asset.id}",
    }), 200


@images_bp.route("/entities/<entity_type>/<entity_id>/image", methods=["GET"])
def get_entity_image(entity_type, entity_id):
    asset, data = coordinator.load_entity_image(_entity_type(entity_type), entity_id)
    return _image_response(asset, data)


@images_bp.route("/entities/<entity_type>/<entity_id>/image", methods=["DELETE"])
def delete_entity_image(entity_type, entity_id):
    actor = current_actor()
    removed = coordinator.detach(actor, _entity_type(entity_type), entity_id)
    return jsonify({
        "status": "ok",
        "message": "Image removed" if removed else "No image to remove",
    }), 200


@images_bp.route("/assets/<asset_id>", methods=["GET"])
def get_asset(asset_id):
    asset, data = coordinator.load_asset(asset_id)
    return _image_response(asset, data)


def _image_response(asset, data):
    """Serve stored bytes with the sniffed type recorded at creation."""
    resp = Response(data, status=200)
    resp.headers["Content-Type"] = asset.content_type
    resp.headers["Content-Length"] = str(len(data))
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["Cache-Control"] = (
        f"public, max-age={current_app.config['IMAGE_CACHE_MAX_AGE']}"
    )
    return resp
