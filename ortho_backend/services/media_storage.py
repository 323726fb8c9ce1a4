"""
Orthodontic Practice Backend - Cloudinary Media Storage

Thin wrapper around the Cloudinary SDK:
    initialize()            configure credentials from the environment
    upload_photo()          store an image under <folder>/patients/<id>/<category>
    delete_photo()          destroy a single asset
    bulk_delete()           destroy many assets
    transformation_url()    delivery URL with a transformation
    optimized_urls()        thumbnail / medium / high / original URLs
    search_photos()         Search API by patient tag and category
    health()                API ping
"""
import io
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

import cloudinary
import cloudinary.api
import cloudinary.uploader
import cloudinary.utils
from cloudinary.exceptions import Error as CloudinaryError

from ..config import CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET, CLOUDINARY_FOLDER
from ..errors import ServiceUnavailableError

logger = logging.getLogger("ortho.upload")

_configured = False

OPTIMIZED_VARIANTS = {
    # Lists and previews
    "thumbnail": {"width": 200, "height": 200, "crop": "fill", "quality": "auto:good"},
    # Detail views
    "medium": {"width": 800, "height": 600, "crop": "limit", "quality": "auto:good"},
    # Clinical review
    "high": {"width": 1920, "height": 1440, "crop": "limit", "quality": "auto:best"},
}


def initialize() -> bool:
    """Configure the SDK; returns False when credentials are missing"""
    global _configured

    if not (CLOUDINARY_CLOUD_NAME and CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET):
        logger.warning("⚠️ Cloudinary credentials not found. Photo uploads are disabled.")
        _configured = False
        return False

    cloudinary.config(
        cloud_name=CLOUDINARY_CLOUD_NAME,
        api_key=CLOUDINARY_API_KEY,
        api_secret=CLOUDINARY_API_SECRET,
        secure=True,
    )
    _configured = True
    logger.info("✅ Cloudinary configured successfully")
    return True


def is_configured() -> bool:
    return _configured


def _require_configured():
    if not _configured:
        raise ServiceUnavailableError("Cloudinary is not configured")


def build_folder(patient_id: Optional[int] = None, category: Optional[str] = None) -> str:
    folder = CLOUDINARY_FOLDER or "orthodontic-app"
    if patient_id:
        folder += f"/patients/{patient_id}"
        if category:
            folder += f"/{category}"
    return folder


def build_tags(patient_id: Optional[int] = None, category: Optional[str] = None) -> List[str]:
    return [
        "orthodontic",
        f"patient_{patient_id}" if patient_id else "general",
        category or "uncategorized",
    ]


def upload_photo(
    content: bytes,
    public_id: Optional[str] = None,
    patient_id: Optional[int] = None,
    category: Optional[str] = None
) -> Dict[str, Any]:
    _require_configured()

    options = {
        "folder": build_folder(patient_id, category),
        "resource_type": "image",
        "transformation": [{"quality": "auto:good"}],
        "context": {
            "patient_id": str(patient_id or ""),
            "category": category or "",
            "uploaded_at": datetime.now().isoformat(),
        },
        "tags": build_tags(patient_id, category),
    }
    if public_id:
        options["public_id"] = public_id

    try:
        result = cloudinary.uploader.upload(io.BytesIO(content), **options)
    except CloudinaryError as e:
        logger.error(f"❌ Cloudinary upload error: {e}")
        raise

    logger.info(f"📸 Photo uploaded to Cloudinary: {result['public_id']}")
    return {
        "public_id": result["public_id"],
        "secure_url": result["secure_url"],
        "url": result.get("url"),
        "width": result.get("width"),
        "height": result.get("height"),
        "format": result.get("format"),
        "bytes": result.get("bytes"),
        "folder": result.get("folder"),
        "created_at": result.get("created_at"),
        "version": result.get("version"),
    }


def delete_photo(public_id: str) -> bool:
    _require_configured()

    result = cloudinary.uploader.destroy(public_id)
    if result.get("result") == "ok":
        logger.info(f"🗑️ Photo deleted from Cloudinary: {public_id}")
        return True

    logger.warning(f"⚠️ Failed to delete photo from Cloudinary: {public_id} ({result})")
    return False


def bulk_delete(public_ids: List[str]) -> Dict[str, Any]:
    _require_configured()

    result = cloudinary.api.delete_resources(public_ids)
    logger.info(f"🗑️ Bulk deleted {len(result.get('deleted', {}))} photos from Cloudinary")
    return result


def transformation_url(public_id: str, **transformations) -> Optional[str]:
    if not _configured:
        return None
    url, _ = cloudinary.utils.cloudinary_url(public_id, secure=True, **transformations)
    return url


def optimized_urls(public_id: str) -> Optional[Dict[str, str]]:
    """Delivery URLs per use case, or None when Cloudinary is not configured"""
    if not _configured:
        return None

    urls = {
        name: transformation_url(public_id, fetch_format="auto", **options)
        for name, options in OPTIMIZED_VARIANTS.items()
    }
    urls["original"] = transformation_url(public_id)
    return urls


def search_photos(
    patient_id: Optional[int] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    max_results: int = 50
) -> List[Dict[str, Any]]:
    _require_configured()

    expression = "resource_type:image"
    if patient_id:
        expression += f" AND tags:patient_{patient_id}"
    if category:
        expression += f" AND tags:{category}"
    if tag:
        expression += f" AND tags:{tag}"

    result = (
        cloudinary.Search()
        .expression(expression)
        .sort_by("created_at", "desc")
        .max_results(max_results)
        .with_field("context")
        .with_field("tags")
        .execute()
    )
    return result.get("resources", [])


def health() -> Dict[str, Any]:
    """Cloudinary status: healthy / disabled / unhealthy"""
    if not _configured:
        return {"status": "disabled", "message": "Cloudinary not configured"}

    try:
        cloudinary.api.ping()
        return {"status": "healthy", "message": "Cloudinary is accessible"}
    except CloudinaryError as e:
        logger.error(f"❌ Cloudinary health check failed: {e}")
        return {"status": "unhealthy", "message": str(e)}
