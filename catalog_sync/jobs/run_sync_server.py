"""HTTP entrypoint that triggers catalog sync passes (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from catalog_sync.core.config import get_settings
from catalog_sync.jobs.run_sync import TARGETS, build_store, run_sync_job

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
# One worker: passes launched from here never overlap on the same collection.
_executor = ThreadPoolExecutor(max_workers=1)

# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, no DB connection."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "location": settings.location,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/sync")
def enqueue_sync() -> Any:
    """
    Enqueue a sync pass.
    Required JSON fields: target (restaurants | reviews | dishes)
    Optional: restaurant_id (dishes only)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    target = str(payload.get("target") or "").strip()
    if target not in TARGETS:
        return jsonify({"error": f"target must be one of: {', '.join(TARGETS)}"}), 400

    restaurant_id: Optional[str] = payload.get("restaurant_id")
    if restaurant_id is not None:
        if target != "dishes":
            return jsonify({"error": "restaurant_id is only valid for the dishes target"}), 400
        restaurant_id = str(restaurant_id).strip()
        if not restaurant_id:
            return jsonify({"error": "restaurant_id must not be empty"}), 400

    job_args = dict(target=target, restaurant_id=restaurant_id)
    logger.info("Queueing sync job: %s", job_args)
    _executor.submit(_run_job_safe, job_args)

    return jsonify({"data": {"status": "queued", **job_args}}), 202


# ---------- Internals ----------


def _run_job_safe(job_args: Dict[str, Any]) -> None:
    store = None
    try:
        settings = get_settings()
        store = build_store(settings)
        result = run_sync_job(job_args["target"], settings, store, restaurant_id=job_args.get("restaurant_id"))
        logger.info("Sync job finished: %s", result.summary())
    except Exception as exc:  # noqa: BLE001
        logger.exception("Sync job failed: %s", exc)
    finally:
        if store is not None:
            store.close()


def main() -> None:
    port = int(os.getenv("PORT") or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
