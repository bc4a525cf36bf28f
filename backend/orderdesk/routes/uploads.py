# Overview: Flask API routes for staging, confirming and exporting order spreadsheets.

"""
Upload Routes

Staged files belong to the user who uploaded them. Confirmation moves them
into permanent uploads with internal codes; download renders rows into a
company template.
"""

import io
import uuid

from flask import Blueprint, current_app, g, jsonify, request, send_file

from ..decorators import require_auth
from ..services import confirm_service, export_service, staging_service, template_service
from ..services.export_service import ExportOptions
from ..services.order_service import RowSelector
from ..services.spreadsheet import read_table
from ..validation import OrderDeskError, ValidationError, error_response


uploads_bp = Blueprint("uploads", __name__, url_prefix="/api/upload")


def _staging_payload() -> dict:
    """Multipart xlsx upload or a JSON table, normalized to stage_file kwargs."""
    if "file" in request.files:
        upload = request.files["file"]
        form = request.form
        return {
            "file_id": form.get("fileId") or uuid.uuid4().hex,
            "file_name": form.get("fileName") or upload.filename,
            "table_data": read_table(upload.stream),
            "vendor_name": form.get("vendorName"),
        }

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("file upload or JSON body required")
    return {
        "file_id": data.get("fileId") or data.get("file_id") or uuid.uuid4().hex,
        "file_name": data.get("fileName") or data.get("file_name"),
        "table_data": data.get("tableData") or data.get("table_data"),
        "vendor_name": data.get("vendorName") or data.get("vendor_name"),
        "product_code_map": data.get("productCodeMap") or data.get("product_code_map"),
        "product_id_map": data.get("productIdMap") or data.get("product_id_map"),
    }


@uploads_bp.post("/temp")
@require_auth
def stage_file_route():
    """
    Stage an uploaded spreadsheet.

    Multipart: file, optional fileId, fileName, vendorName.
    JSON: {fileId, fileName, tableData, vendorName, productCodeMap, productIdMap}
    """
    try:
        staged = staging_service.stage_file(
            company_id=g.company_id,
            user_id=g.current_user.id,
            **_staging_payload(),
        )
        return jsonify({"success": True, "file": staged.to_dict()}), 201
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to stage upload")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@uploads_bp.get("/temp")
@require_auth
def list_staged_route():
    include_rows = request.args.get("include_rows", "false").lower() == "true"
    files = staging_service.list_staged_files(g.company_id, g.current_user.id)
    return jsonify({
        "success": True,
        "files": [f.to_dict(include_rows=include_rows) for f in files],
    })


@uploads_bp.put("/temp/<file_id>/codes")
@require_auth
def assign_codes_route(file_id: str):
    """
    Record product choices for a staged file.

    Request body: {"codes": [{"name": "...", "code": "...", "product_id": optional}]}
    """
    data = request.get_json(silent=True) or {}
    try:
        staged = staging_service.assign_product_codes(
            company_id=g.company_id,
            user_id=g.current_user.id,
            file_id=file_id,
            assignments=data.get("codes"),
        )
        return jsonify({"success": True, "file": staged.to_dict()})
    except OrderDeskError as e:
        return error_response(e)


@uploads_bp.delete("/temp/<file_id>")
@require_auth
def delete_staged_route(file_id: str):
    try:
        staging_service.delete_staged_file(
            company_id=g.company_id,
            user_id=g.current_user.id,
            file_id=file_id,
        )
        return jsonify({"success": True})
    except OrderDeskError as e:
        return error_response(e)


@uploads_bp.post("/temp/confirm")
@require_auth
def confirm_route():
    """
    Confirm staged files.

    Request body: {"fileIds": ["..."]}
    Returns: {success, savedCount, totalRows, uploads: [...]}
    """
    data = request.get_json(silent=True) or {}
    try:
        result = confirm_service.confirm_staged_files(
            g.company_id,
            g.current_user,
            data.get("fileIds", data.get("file_ids")),
        )
        body = result.to_dict()
        body["success"] = True
        body["message"] = f"{result.saved_count}개 파일, {result.total_rows}건이 저장되었습니다."
        return jsonify(body), 201
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm staged files")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@uploads_bp.post("/template")
@require_auth
def upload_template_route():
    """
    Save a sample workbook as an export template.

    Multipart: file, name (defaults to the file name without extension).
    """
    if "file" not in request.files:
        return jsonify({"success": False, "error": "file is required"}), 400

    upload = request.files["file"]
    name = request.form.get("name") or (upload.filename or "").rsplit(".", 1)[0]
    try:
        template = template_service.create_template(
            g.company_id,
            name,
            template_service.template_data_from_workbook(upload.read()),
        )
        return jsonify({"success": True, "template": template.to_dict()}), 201
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save template")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@uploads_bp.post("/download")
@require_auth
def download_route():
    """
    Render rows into a template.

    Request body:
    {
        "templateId": 1,
        "rowIds": [..],          // or
        "filters": {...},        // neither means every row
        "options": {"isInhouse": false, "preferSabangName": true}
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        template_id = data.get("templateId", data.get("template_id"))
        if template_id is None:
            raise ValidationError("templateId is required")
        selector = RowSelector.from_payload(
            data.get("rowIds", data.get("row_ids")),
            data.get("filters"),
        )
        result = export_service.export_template(
            g.company_id,
            template_id,
            selector,
            ExportOptions.from_payload(data.get("options")),
            user=g.current_user,
        )
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to export template")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    response = send_file(
        io.BytesIO(result.content),
        mimetype=result.content_type,
        as_attachment=True,
        download_name=result.filename,
    )
    response.headers["X-Exported-Rows"] = str(len(result.row_ids))
    response.headers["X-Advanced-Rows"] = str(len(result.advanced))
    return response
