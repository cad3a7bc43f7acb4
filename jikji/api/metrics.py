"""Metrics API endpoint for Prometheus scraping."""

import gzip
import logging
from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, Response, request

from jikji.collection.exporter import SnapshotExporter

logger = logging.getLogger(__name__)

metrics_bp = Blueprint("metrics", __name__, url_prefix="/metrics")


@metrics_bp.route("", methods=["GET"])
@inject
def get_metrics(
    exporter: SnapshotExporter = Provide["exporter"],
) -> Any:
    """Return the latest collected values in Prometheus exposition format.

    Job failures never fail a scrape; only encoding errors do.
    """
    try:
        body, content_type = exporter.export(request.headers.get("Accept"))
    except Exception as e:
        logger.error(f"Error encoding metrics: {e}", exc_info=True)
        return Response("metrics encoding failed\n", status=500, content_type="text/plain")

    response = Response(body, content_type=content_type)

    accept_encoding = request.headers.get("Accept-Encoding", "") or ""
    if "gzip" in accept_encoding.lower():
        response.set_data(gzip.compress(body))
        response.headers["Content-Encoding"] = "gzip"
        response.headers["Vary"] = "Accept-Encoding"

    return response
